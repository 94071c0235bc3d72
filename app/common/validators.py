"""
Validadores y normalizadores compartidos por los schemas
"""
import re
from typing import Optional


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normaliza un teléfono quitando espacios, guiones y paréntesis.
    Acepta un '+' inicial y entre 7 y 15 dígitos.
    """
    if phone is None:
        return None
    cleaned = re.sub(r'[\s\-\(\)\.]', '', phone)
    if not re.match(r'^\+?[0-9]{7,15}$', cleaned):
        raise ValueError('Número de teléfono inválido. Use entre 7 y 15 dígitos, opcionalmente con +')
    return cleaned


def normalize_tax_id(tax_id: Optional[str]) -> Optional[str]:
    """
    Normaliza un identificador tributario (NIT, RUT, cédula) a dígitos y
    letras en mayúscula, sin puntos ni espacios. Conserva el guion del
    dígito de verificación.
    """
    if tax_id is None:
        return None
    cleaned = re.sub(r'[\.\s]', '', tax_id).upper()
    if not re.match(r'^[0-9A-Z]{5,20}(-[0-9A-Z])?$', cleaned):
        raise ValueError('Identificación tributaria inválida')
    return cleaned


def normalize_code(code: str) -> str:
    """Códigos de sede: mayúsculas, números, guion y guion bajo."""
    cleaned = code.strip().upper()
    if not re.match(r'^[A-Z0-9_\-]{2,20}$', cleaned):
        raise ValueError('El código solo puede contener letras, números, guiones y guiones bajos (2-20)')
    return cleaned


def normalize_sku(sku: str) -> str:
    cleaned = sku.strip().upper()
    if not cleaned or len(cleaned) > 50 or re.search(r'\s', cleaned):
        raise ValueError('SKU inválido: sin espacios y máximo 50 caracteres')
    return cleaned
