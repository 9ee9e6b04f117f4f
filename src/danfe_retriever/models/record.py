"""
Pydantic models for normalized NF-e records.

Schema Design:
- Field names follow the NF-e domain vocabulary (Portuguese, snake_case)
- JSON keys (by alias) are camelCase: chaveAcesso, tipoNF, valorICMS, ...
- Required leaves default to "" so a missing source node never aborts parsing
- Optional sub-trees (entrega, cobranca, protocolo, ...) are None when absent
- Immutable (frozen): a record is built once per parse and handed over as-is
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Shared configuration for every record component."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys; absent optional parts omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


# === Header ===

class NFeHeader(RecordModel):
    """Identification block (<ide>) plus the access key and grand total."""

    chave_acesso: str = ""
    numero: str = ""
    serie: str = ""
    data_emissao: str = ""
    valor_total: str = ""
    natureza_operacao: str = ""
    tipo_nf: str = Field(default="", alias="tipoNF")  # 0=entrada, 1=saída
    ambiente: str = ""  # 1=produção, 2=homologação
    finalidade: str = ""
    codigo_numerico: str = ""
    digito_verificador: str = ""
    modelo: str = ""
    indicador_presenca: str = ""
    indicador_final: str = ""
    indicador_destino: str = ""
    tipo_emissao: str = ""


# === Parties ===

class Address(RecordModel):
    logradouro: str = ""
    numero: str = ""
    complemento: str = ""
    bairro: str = ""
    municipio: str = ""
    uf: str = ""
    cep: str = ""
    telefone: str = ""
    codigo_municipio: str = ""
    codigo_pais: str = ""
    nome_pais: str = ""


class Issuer(RecordModel):
    """Emitente (<emit>)."""

    cnpj: str = ""
    razao_social: str = ""
    nome_fantasia: Optional[str] = None
    endereco: Address = Field(default_factory=Address)
    inscricao_estadual: str = ""
    codigo_regime_tributario: str = ""


class Recipient(RecordModel):
    """Destinatário (<dest>)."""

    cpf_cnpj: str = ""
    nome: str = ""
    endereco: Address = Field(default_factory=Address)
    inscricao_estadual: str = ""
    indicador_ie: str = Field(default="", alias="indicadorIE")


class DeliveryParty(RecordModel):
    """Local de entrega (<entrega>), present only when it differs from <dest>."""

    nome: str = ""
    cpf_cnpj: str = ""
    endereco: Address = Field(default_factory=Address)
    inscricao_estadual: str = ""
    email: str = ""


# === Line items and taxes ===

class IcmsTax(RecordModel):
    grupo: str = ""
    origem: str = ""
    cst: str = ""
    modalidade_bc: str = Field(default="", alias="modalidadeBC")
    base_calculo: str = ""
    aliquota: str = ""
    valor: str = ""


class IpiTax(RecordModel):
    grupo: str = ""
    cst: str = ""
    codigo_enquadramento: str = ""
    base_calculo: str = ""
    aliquota: str = ""
    valor: str = ""


class PisTax(RecordModel):
    grupo: str = ""
    cst: str = ""
    base_calculo: str = ""
    aliquota: str = ""
    valor: str = ""


class CofinsTax(RecordModel):
    grupo: str = ""
    cst: str = ""
    base_calculo: str = ""
    aliquota: str = ""
    valor: str = ""


class ItemTaxes(RecordModel):
    """Per-item tax breakdown; ICMS is always present, possibly empty."""

    icms: IcmsTax = Field(default_factory=IcmsTax)
    ipi: Optional[IpiTax] = None
    pis: Optional[PisTax] = None
    cofins: Optional[CofinsTax] = None
    valor_tributos: str = ""


class ProductItem(RecordModel):
    """One <det> entry."""

    numero_item: str = ""
    codigo: str = ""
    descricao: str = ""
    quantidade: str = ""
    unidade: str = ""
    valor_unitario: str = ""
    valor_total: str = ""
    ncm: str = ""
    cfop: str = ""
    cest: str = ""
    codigo_ean: str = Field(default="", alias="codigoEAN")
    codigo_ean_tributavel: str = Field(default="", alias="codigoEANTributavel")
    unidade_tributavel: str = ""
    quantidade_tributavel: str = ""
    valor_unitario_tributavel: str = ""
    indicador_total: str = ""
    informacoes_adicionais: str = ""
    impostos: ItemTaxes = Field(default_factory=ItemTaxes)


# === Totals ===

class Totals(RecordModel):
    """Verbatim copy of <total><ICMSTot>; never recomputed from items."""

    valor_produtos: str = ""
    valor_nota: str = ""
    valor_icms: str = Field(default="", alias="valorICMS")
    valor_ipi: str = Field(default="", alias="valorIPI")
    valor_pis: str = Field(default="", alias="valorPIS")
    valor_cofins: str = Field(default="", alias="valorCOFINS")
    valor_tributos: str = ""
    base_calculo_icms: str = Field(default="", alias="baseCalculoICMS")
    base_calculo_st: str = Field(default="", alias="baseCalculoST")
    valor_st: str = Field(default="", alias="valorST")
    valor_frete: str = ""
    valor_seguro: str = ""
    valor_desconto: str = ""
    valor_outros: str = ""
    valor_ii: str = Field(default="", alias="valorII")
    valor_icms_desonerado: str = Field(default="", alias="valorICMSDesonerado")
    valor_fcp: str = Field(default="", alias="valorFCP")
    valor_fcp_st: str = Field(default="", alias="valorFCPST")
    valor_fcp_st_ret: str = Field(default="", alias="valorFCPSTRet")
    valor_ipi_devolvido: str = Field(default="", alias="valorIPIDevolvido")


# === Transport ===

class Carrier(RecordModel):
    nome: str = ""
    cnpj: str = ""
    inscricao_estadual: str = ""
    endereco: str = ""
    municipio: str = ""
    uf: str = ""


class Volume(RecordModel):
    quantidade: str = ""
    especie: str = ""
    peso_liquido: str = ""
    peso_bruto: str = ""
    marca: str = ""
    numeracao: str = ""


class Transport(RecordModel):
    modalidade_frete: str = ""
    transportadora: Optional[Carrier] = None
    volumes: Optional[List[Volume]] = None


# === Billing and payment ===

class Invoice(RecordModel):
    """Fatura (<cobr><fat>)."""

    numero: str = ""
    valor_original: str = ""
    valor_desconto: str = ""
    valor_liquido: str = ""


class Installment(RecordModel):
    """Duplicata (<cobr><dup>)."""

    numero: str = ""
    data_vencimento: str = ""
    valor: str = ""


class Billing(RecordModel):
    fatura: Optional[Invoice] = None
    duplicatas: Optional[List[Installment]] = None


class Payment(RecordModel):
    """One <pag><detPag> entry."""

    forma: str = ""
    valor: str = ""
    indicador_pagamento: str = ""


# === Supplementary ===

class AdditionalInfo(RecordModel):
    informacoes_complementares: str = ""
    informacoes_fisco: str = ""


class AuthorizationProtocol(RecordModel):
    """SEFAZ authorization (<protNFe><infProt>), only in nfeProc envelopes."""

    numero: str = ""
    data_recebimento: str = ""
    motivo: str = ""
    codigo_status: str = ""
    digest_value: str = ""
    chave_nfe: str = Field(default="", alias="chaveNFe")


class FiscalRecord(RecordModel):
    """
    Normalized NF-e.

    Example:
        >>> record = DanfeXmlReader().read_and_parse('downloads/nfe.xml')
        >>> record.nfe.chave_acesso
        '35241145070190000232550010006198721341979067'
        >>> record.to_dict()['nfe']['tipoNF']
        '1'
    """

    nfe: NFeHeader = Field(default_factory=NFeHeader)
    emitente: Issuer = Field(default_factory=Issuer)
    destinatario: Recipient = Field(default_factory=Recipient)
    entrega: Optional[DeliveryParty] = None
    produtos: List[ProductItem] = Field(default_factory=list)
    totais: Totals = Field(default_factory=Totals)
    transporte: Transport = Field(default_factory=Transport)
    cobranca: Optional[Billing] = None
    pagamento: Optional[List[Payment]] = None
    informacoes_adicionais: Optional[AdditionalInfo] = None
    protocolo: Optional[AuthorizationProtocol] = None

    @property
    def chave_acesso(self) -> str:
        return self.nfe.chave_acesso

    def __repr__(self) -> str:
        return (
            f"FiscalRecord(chave='{self.nfe.chave_acesso}', "
            f"numero='{self.nfe.numero}', "
            f"produtos={len(self.produtos)})"
        )
