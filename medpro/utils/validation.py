"""
Validation and formatting helpers for Brazilian identifiers and contacts.
"""

import re

_NON_DIGIT = re.compile(r"\D")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def only_digits(value: str) -> str:
    return _NON_DIGIT.sub("", value or "")


def _all_same_digit(value: str) -> bool:
    return len(set(value)) == 1


def _cpf_check_digit(digits: str, weight_start: int) -> int:
    total = sum(int(d) * (weight_start - i) for i, d in enumerate(digits))
    check = 11 - (total % 11)
    return 0 if check >= 10 else check


def validate_cpf(cpf: str) -> bool:
    """Validate a CPF, with or without punctuation."""
    clean = only_digits(cpf)
    if len(clean) != 11 or _all_same_digit(clean):
        return False

    if _cpf_check_digit(clean[:9], 10) != int(clean[9]):
        return False
    return _cpf_check_digit(clean[:10], 11) == int(clean[10])


def _cnpj_check_digit(numbers: str) -> int:
    total = 0
    pos = len(numbers) - 7
    for digit in numbers:
        total += int(digit) * pos
        pos -= 1
        if pos < 2:
            pos = 9
    return 0 if total % 11 < 2 else 11 - (total % 11)


def validate_cnpj(cnpj: str) -> bool:
    """Validate a CNPJ, with or without punctuation."""
    clean = only_digits(cnpj)
    if len(clean) != 14 or _all_same_digit(clean):
        return False

    if _cnpj_check_digit(clean[:12]) != int(clean[12]):
        return False
    return _cnpj_check_digit(clean[:13]) == int(clean[13])


def validate_phone(phone: str) -> bool:
    """
    Validate a Brazilian phone number.

    Landlines have 10 digits and mobiles 11 (area code + number). Area codes
    run from 11 to 99 and mobile numbers start with 9.
    """
    clean = only_digits(phone)
    if len(clean) not in (10, 11):
        return False

    area_code = int(clean[:2])
    if area_code < 11 or area_code > 99:
        return False

    if len(clean) == 11 and clean[2] != "9":
        return False
    return True


def validate_email(email: str) -> bool:
    if not email:
        return False
    return bool(_EMAIL.match(email))


def format_cpf(cpf: str) -> str:
    """000.000.000-00; returns the input untouched if it is not 11 digits."""
    clean = only_digits(cpf)
    if len(clean) != 11:
        return cpf
    return f"{clean[:3]}.{clean[3:6]}.{clean[6:9]}-{clean[9:]}"


def format_cnpj(cnpj: str) -> str:
    """00.000.000/0000-00; returns the input untouched if it is not 14 digits."""
    clean = only_digits(cnpj)
    if len(clean) != 14:
        return cnpj
    return f"{clean[:2]}.{clean[2:5]}.{clean[5:8]}/{clean[8:12]}-{clean[12:]}"


def format_phone(phone: str) -> str:
    """(00) 00000-0000 for mobile numbers."""
    clean = only_digits(phone)
    if len(clean) != 11:
        return phone
    return f"({clean[:2]}) {clean[2:7]}-{clean[7:]}"


def format_cep(cep: str) -> str:
    clean = only_digits(cep)
    if len(clean) != 8:
        return cep
    return f"{clean[:5]}-{clean[5:]}"
