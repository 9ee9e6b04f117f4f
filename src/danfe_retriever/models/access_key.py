"""
Access key components model.
"""

from pydantic import BaseModel, Field


class AccessKeyComponents(BaseModel):
    """
    Fields encoded in a 44-digit NF-e access key.

    Attributes:
        uf: IBGE state code of the issuer
        ano: Two-digit emission year
        mes: Emission month
        cnpj: Issuer CNPJ (14 digits)
        modelo: Document model (55=NF-e, 65=NFC-e)
        serie: Series
        numero: Invoice number
        forma_emissao: Emission mode flag (tpEmis)
        codigo_numerico: Random numeric code (cNF, 8 digits)
        digito_verificador: Check digit

    Example:
        >>> parts = AccessKeyComponents.from_access_key(
        ...     '35241145070190000232550010006198721341979067'
        ... )
        >>> parts.uf, parts.modelo, parts.serie
        (35, 55, 1)
    """

    uf: int = Field(..., description="IBGE state code", examples=[35])
    ano: int = Field(..., ge=0, le=99, description="Two-digit year", examples=[24])
    mes: int = Field(..., ge=1, le=12, examples=[11])
    cnpj: str = Field(..., pattern=r'^\d{14}$', examples=["45070190000232"])
    modelo: int = Field(..., examples=[55])
    serie: int = Field(..., examples=[1])
    numero: int = Field(..., examples=[619872])
    forma_emissao: int = Field(..., examples=[1])
    codigo_numerico: str = Field(..., pattern=r'^\d{8}$', examples=["34197906"])
    digito_verificador: int = Field(..., ge=0, le=9, examples=[7])

    model_config = {
        "frozen": True,
    }

    @classmethod
    def from_access_key(cls, access_key: str) -> 'AccessKeyComponents':
        """Slice a 44-digit key; no validation beyond field constraints."""
        return cls(
            uf=int(access_key[0:2]),
            ano=int(access_key[2:4]),
            mes=int(access_key[4:6]),
            cnpj=access_key[6:20],
            modelo=int(access_key[20:22]),
            serie=int(access_key[22:25]),
            numero=int(access_key[25:34]),
            forma_emissao=int(access_key[34:35]),
            codigo_numerico=access_key[35:43],
            digito_verificador=int(access_key[43]),
        )
