"""
Reusable validators for NF-e access keys.

These validators work with config/codes.yaml (UF table) and can be used with
Pydantic @field_validator decorator for automatic input validation.

Access key layout (44 digits):
    cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1)
"""

from typing import List

from danfe_retriever.config import get_config

ACCESS_KEY_LENGTH = 44

# Mod-11 weights for the first 43 digits: 4,3,2 then 9..2 repeated
CHECK_DIGIT_WEIGHTS: List[int] = [4, 3, 2] + [9, 8, 7, 6, 5, 4, 3, 2] * 5

VALID_MODELS = ('55', '65')  # 55=NF-e, 65=NFC-e


def compute_check_digit(digits: str) -> int:
    """
    Compute the access key check digit over its first 43 digits.

    Weighted sum with CHECK_DIGIT_WEIGHTS, remainder modulo 11;
    digit is 0 when the remainder is below 2, otherwise 11 - remainder.

    Args:
        digits: The first 43 digits of an access key

    Returns:
        Check digit (0-9)

    Raises:
        ValueError: If digits is not exactly 43 numeric characters

    Example:
        >>> compute_check_digit('3524114507019000023255001000619872134197906')
        7
    """
    if len(digits) != ACCESS_KEY_LENGTH - 1 or not digits.isdigit():
        raise ValueError(
            f"Check digit needs exactly {ACCESS_KEY_LENGTH - 1} digits, got: '{digits}'"
        )

    total = sum(int(d) * w for d, w in zip(digits, CHECK_DIGIT_WEIGHTS))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_check_digit(access_key: str) -> bool:
    """Return True if the trailing digit matches compute_check_digit."""
    if len(access_key) != ACCESS_KEY_LENGTH or not access_key.isdigit():
        return False
    return compute_check_digit(access_key[:43]) == int(access_key[43])


def validate_cnpj(cnpj: str) -> bool:
    """
    Validate a 14-digit CNPJ with its two mod-11 check digits.

    Example:
        >>> validate_cnpj('45070190000232')
        True
        >>> validate_cnpj('11111111111111')
        False
    """
    if len(cnpj) != 14 or not cnpj.isdigit():
        return False

    # Repeated digits pass the arithmetic but are never issued
    if len(set(cnpj)) == 1:
        return False

    def _digit(base: str, weight: int) -> int:
        total = 0
        for char in base:
            total += int(char) * weight
            weight = 9 if weight == 2 else weight - 1
        remainder = total % 11
        return 0 if remainder < 2 else 11 - remainder

    first = _digit(cnpj[:12], 5)
    second = _digit(cnpj[:13], 6)
    return first == int(cnpj[12]) and second == int(cnpj[13])


def validate_access_key(access_key: str, verify_checksum: bool = True) -> str:
    """
    Validate an NF-e access key.

    Checks, in order: 44 numeric digits, known UF code, month 01-12,
    issuer CNPJ check digits, model 55/65 and (optionally) the key's own
    check digit.

    Args:
        access_key: Access key to validate
        verify_checksum: Also verify the trailing check digit (default: True)

    Returns:
        The validated access key (unchanged if valid)

    Raises:
        ValueError: With the first failing rule, e.g. "Invalid UF code: 99"

    Example:
        >>> validate_access_key('35241145070190000232550010006198721341979067')
        '35241145070190000232550010006198721341979067'
    """
    if not access_key or not access_key.isdigit() or len(access_key) != ACCESS_KEY_LENGTH:
        raise ValueError(
            f"Access key must be {ACCESS_KEY_LENGTH} digits, got {len(access_key or '')} characters"
        )

    uf = access_key[0:2]
    if not get_config().is_valid_uf(uf):
        raise ValueError(f"Invalid UF code: {uf}")

    month = int(access_key[4:6])
    if month < 1 or month > 12:
        raise ValueError(f"Invalid month: {month}")

    if not validate_cnpj(access_key[6:20]):
        raise ValueError("Invalid issuer CNPJ")

    model = access_key[20:22]
    if model not in VALID_MODELS:
        raise ValueError(f"Invalid model: {model} (must be 55 or 65)")

    if verify_checksum and not validate_check_digit(access_key):
        raise ValueError("Invalid check digit")

    return access_key


def parse_access_key(access_key: str, verify_checksum: bool = True):
    """
    Split a validated access key into its components.

    Args:
        access_key: 44-digit access key
        verify_checksum: Also verify the trailing check digit (default: True)

    Returns:
        AccessKeyComponents instance

    Raises:
        ValueError: If the key fails validate_access_key()

    Example:
        >>> parts = parse_access_key('35241145070190000232550010006198721341979067')
        >>> parts.cnpj, parts.numero
        ('45070190000232', 619872)
    """
    from danfe_retriever.models.access_key import AccessKeyComponents

    validate_access_key(access_key, verify_checksum=verify_checksum)
    return AccessKeyComponents.from_access_key(access_key)
