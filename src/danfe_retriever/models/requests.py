"""
Request models for pipeline operations.

These Pydantic models provide type-safe, validated interfaces for
DANFE retrieval requests.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from danfe_retriever.validators import validate_access_key


class FetchRequest(BaseModel):
    """
    Request model for retrieving one DANFE XML.

    Attributes:
        chave_acesso: 44-digit NF-e access key
        verify_checksum: Reject keys with a wrong check digit (default: True)

    Example:
        >>> request = FetchRequest(
        ...     chave_acesso='35241145070190000232550010006198721341979067'
        ... )
        >>> request.chave_acesso[:2]
        '35'

    Raises:
        ValidationError: If the access key fails validation
    """

    verify_checksum: bool = Field(
        default=True,
        description="Verify the trailing mod-11 check digit"
    )

    chave_acesso: str = Field(
        ...,
        description="NF-e access key with 44 numeric digits",
        examples=["35241145070190000232550010006198721341979067"]
    )

    @field_validator('chave_acesso', mode='before')
    @classmethod
    def strip_separators(cls, v):
        """Accept keys copied from a printed DANFE (grouped with spaces or dots)."""
        if isinstance(v, str):
            return ''.join(ch for ch in v if ch not in ' .-')
        return v

    @field_validator('chave_acesso')
    @classmethod
    def validate_chave(cls, v: str, info: ValidationInfo) -> str:
        """Validate format, UF, CNPJ, model and check digit."""
        return validate_access_key(v, verify_checksum=info.data.get('verify_checksum', True))

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [{
                "chave_acesso": "35241145070190000232550010006198721341979067",
            }]
        }
    )
