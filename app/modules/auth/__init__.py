"""
Autenticación, roles globales y cadena de guards por empresa.
"""
