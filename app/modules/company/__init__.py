"""
Empresas y membresías de usuarios.
"""
