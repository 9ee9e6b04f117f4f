"""
Unit tests for access key validation functions.

Tests the mod-11 check digit, CNPJ validation and the full access key
validator used by FetchRequest.
"""

import random

import pytest
from pydantic import BaseModel, field_validator, ValidationError

from danfe_retriever.validators import (
    compute_check_digit,
    validate_check_digit,
    validate_cnpj,
    validate_access_key,
    parse_access_key,
)


SAMPLE_KEY = "35241145070190000232550010006198721341979067"


def _replace(key: str, start: int, value: str) -> str:
    return key[:start] + value + key[start + len(value):]


class TestCheckDigit:
    """Test suite for compute_check_digit() / validate_check_digit()."""

    def test_sample_key_check_digit(self):
        """Should reproduce the check digit printed on a real DANFE."""
        assert compute_check_digit(SAMPLE_KEY[:43]) == 7

    def test_validate_check_digit_accepts_sample(self):
        assert validate_check_digit(SAMPLE_KEY) is True

    def test_validate_check_digit_rejects_wrong_digit(self):
        assert validate_check_digit(SAMPLE_KEY[:43] + "8") is False

    def test_validate_check_digit_rejects_wrong_length(self):
        assert validate_check_digit(SAMPLE_KEY[:40]) is False

    def test_generated_keys_always_validate(self):
        """Appending the function's own output must always yield a valid key."""
        rng = random.Random(20241106)

        for _ in range(200):
            prefix = ''.join(rng.choice('0123456789') for _ in range(43))
            digit = compute_check_digit(prefix)

            assert 0 <= digit <= 9
            assert compute_check_digit(prefix) == digit  # deterministic
            assert validate_check_digit(prefix + str(digit))

    def test_remainder_below_two_maps_to_zero(self):
        """Digits whose weighted sum is a multiple of 11 get check digit 0."""
        assert compute_check_digit("0" * 43) == 0

    def test_compute_check_digit_requires_43_digits(self):
        with pytest.raises(ValueError, match="43 digits"):
            compute_check_digit("123")

        with pytest.raises(ValueError):
            compute_check_digit("a" * 43)


class TestValidateCnpj:
    """Test suite for validate_cnpj()."""

    def test_accepts_issuer_cnpj(self):
        assert validate_cnpj("45070190000232") is True

    def test_accepts_other_real_cnpjs(self):
        assert validate_cnpj("48985779000178") is True
        assert validate_cnpj("52548435006703") is True

    def test_rejects_wrong_check_digits(self):
        assert validate_cnpj("45070190000233") is False

    def test_rejects_repeated_digits(self):
        assert validate_cnpj("11111111111111") is False
        assert validate_cnpj("00000000000000") is False

    def test_rejects_wrong_format(self):
        assert validate_cnpj("4507019000023") is False
        assert validate_cnpj("45.070.190/0002-32") is False


class TestValidateAccessKey:
    """Test suite for validate_access_key()."""

    def test_accepts_valid_key(self):
        """Should return the key unchanged."""
        assert validate_access_key(SAMPLE_KEY) == SAMPLE_KEY

    def test_rejects_short_key(self):
        with pytest.raises(ValueError, match="must be 44 digits"):
            validate_access_key(SAMPLE_KEY[:43])

    def test_rejects_non_digits(self):
        with pytest.raises(ValueError, match="must be 44 digits"):
            validate_access_key("A" + SAMPLE_KEY[1:])

    def test_rejects_empty(self):
        with pytest.raises(ValueError, match="must be 44 digits"):
            validate_access_key("")

    def test_rejects_unknown_uf(self):
        with pytest.raises(ValueError, match="Invalid UF code: 99"):
            validate_access_key(_replace(SAMPLE_KEY, 0, "99"))

    def test_rejects_invalid_month(self):
        with pytest.raises(ValueError, match="Invalid month: 13"):
            validate_access_key(_replace(SAMPLE_KEY, 4, "13"))

    def test_rejects_invalid_issuer_cnpj(self):
        with pytest.raises(ValueError, match="Invalid issuer CNPJ"):
            validate_access_key(_replace(SAMPLE_KEY, 6, "45070190000233"))

    def test_rejects_invalid_model(self):
        with pytest.raises(ValueError, match="Invalid model: 57"):
            validate_access_key(_replace(SAMPLE_KEY, 20, "57"))

    def test_rejects_wrong_check_digit(self):
        with pytest.raises(ValueError, match="Invalid check digit"):
            validate_access_key(SAMPLE_KEY[:43] + "8")

    def test_checksum_can_be_skipped(self):
        """verify_checksum=False keeps structural checks only."""
        key = SAMPLE_KEY[:43] + "8"
        assert validate_access_key(key, verify_checksum=False) == key

    def test_accepts_nfce_model(self):
        key = _replace(SAMPLE_KEY, 20, "65")[:43]
        key += str(compute_check_digit(key))
        assert validate_access_key(key) == key

    def test_works_as_pydantic_field_validator(self):
        """Should integrate with Pydantic @field_validator."""

        class KeyModel(BaseModel):
            chave: str

            @field_validator('chave')
            @classmethod
            def check(cls, v):
                return validate_access_key(v)

        assert KeyModel(chave=SAMPLE_KEY).chave == SAMPLE_KEY

        with pytest.raises(ValidationError, match="Invalid check digit"):
            KeyModel(chave=SAMPLE_KEY[:43] + "0")


class TestParseAccessKey:
    """Test suite for parse_access_key()."""

    def test_splits_components(self):
        parts = parse_access_key(SAMPLE_KEY)

        assert parts.uf == 35
        assert parts.ano == 24
        assert parts.mes == 11
        assert parts.cnpj == "45070190000232"
        assert parts.modelo == 55
        assert parts.serie == 1
        assert parts.numero == 619872
        assert parts.forma_emissao == 1
        assert parts.codigo_numerico == "34197906"
        assert parts.digito_verificador == 7

    def test_raises_for_invalid_key(self):
        with pytest.raises(ValueError):
            parse_access_key(SAMPLE_KEY[:43] + "1")
