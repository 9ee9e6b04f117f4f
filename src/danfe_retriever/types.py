"""
Helper classes for interpreting NF-e codes.

A FiscalRecord keeps every code exactly as it appears in the XML ('1', '15',
'0', ...). These helpers translate codes into Portuguese descriptions using
the tables in config/codes.yaml. Unknown codes never raise: they get a
"desconhecido" style description so reports can still be rendered.
"""

from typing import Dict, Optional

from danfe_retriever.config import get_config


class _CodeTable:
    """Shared lookups over one table of config/codes.yaml."""

    table_name: str = ''
    unknown_description: str = 'Código desconhecido'

    @classmethod
    def _table(cls) -> Dict[str, str]:
        return getattr(get_config(), cls.table_name)

    @classmethod
    def _normalize(cls, code: Optional[str]) -> str:
        return '' if code is None else str(code).strip()

    @classmethod
    def list_available(cls) -> Dict[str, str]:
        """
        List all known codes with their descriptions.

        Returns:
            Copy of the code table (mutations do not affect the config)
        """
        return dict(cls._table())

    @classmethod
    def is_valid(cls, code: Optional[str]) -> bool:
        return cls._normalize(code) in cls._table()

    @classmethod
    def describe(cls, code: Optional[str]) -> str:
        """Description for a code, or the table's unknown description."""
        return cls._table().get(cls._normalize(code), cls.unknown_description)


class OperationType(_CodeTable):
    """
    tpNF: direction of the goods movement.

    Example:
        >>> OperationType.describe('1')
        'NFe de saída'
        >>> OperationType.is_saida('1'), OperationType.is_entrada('1')
        (True, False)
    """

    table_name = 'tipo_nf'
    unknown_description = 'Tipo não identificado'

    ENTRADA = '0'
    SAIDA = '1'

    @classmethod
    def is_entrada(cls, code: Optional[str]) -> bool:
        """Inbound operation (purchases, returns received)."""
        return cls._normalize(code) == cls.ENTRADA

    @classmethod
    def is_saida(cls, code: Optional[str]) -> bool:
        """Outbound operation (sales, shipments, returns sent)."""
        return cls._normalize(code) == cls.SAIDA

    @classmethod
    def movimento(cls, code: Optional[str]) -> str:
        """
        Stock movement label.

        Example:
            >>> OperationType.movimento('0')
            'ENTRADA'
            >>> OperationType.movimento('7')
            'DESCONHECIDO'
        """
        if cls.is_entrada(code):
            return 'ENTRADA'
        if cls.is_saida(code):
            return 'SAÍDA'
        return 'DESCONHECIDO'


class Environment(_CodeTable):
    """
    tpAmb: production or homologation (test) environment.

    Example:
        >>> Environment.describe('2')
        'Homologação'
        >>> Environment.is_production('1')
        True
    """

    table_name = 'ambiente'
    unknown_description = 'Ambiente desconhecido'

    @classmethod
    def is_production(cls, code: Optional[str]) -> bool:
        return cls._normalize(code) == '1'


class Purpose(_CodeTable):
    """finNFe: normal, complementary, adjustment or return."""

    table_name = 'finalidade'
    unknown_description = 'Finalidade desconhecida'


class FreightMode(_CodeTable):
    """
    modFrete: who contracts and pays the freight.

    Example:
        >>> FreightMode.describe('0')
        'Emitente (CIF)'
        >>> FreightMode.responsavel('1')
        'Destinatário'
    """

    table_name = 'modalidade_frete'
    unknown_description = 'Modalidade desconhecida'
    unknown_responsible = 'Desconhecido'

    @classmethod
    def list_available(cls) -> Dict[str, str]:
        return {code: entry['descricao'] for code, entry in cls._table().items()}

    @classmethod
    def describe(cls, code: Optional[str]) -> str:
        entry = cls._table().get(cls._normalize(code))
        return entry['descricao'] if entry else cls.unknown_description

    @classmethod
    def responsavel(cls, code: Optional[str]) -> str:
        entry = cls._table().get(cls._normalize(code))
        return entry['responsavel'] if entry else cls.unknown_responsible


class PaymentMethod(_CodeTable):
    """
    tPag: payment method.

    Codes are two digits in the XML; single digits are zero-padded.

    Example:
        >>> PaymentMethod.describe('15')
        'Boleto Bancário'
        >>> PaymentMethod.describe('42')
        'Forma de pagamento 42'
    """

    table_name = 'forma_pagamento'

    @classmethod
    def _normalize(cls, code: Optional[str]) -> str:
        normalized = super()._normalize(code)
        return normalized.zfill(2) if normalized.isdigit() else normalized

    @classmethod
    def describe(cls, code: Optional[str]) -> str:
        normalized = cls._normalize(code)
        return cls._table().get(normalized, f"Forma de pagamento {normalized}")


class TaxRegime(_CodeTable):
    """
    CRT: issuer tax regime.

    Example:
        >>> TaxRegime.describe('3')
        'Regime Normal'
        >>> TaxRegime.is_simples_nacional('1')
        True
    """

    table_name = 'regime_tributario'
    unknown_description = 'Regime desconhecido'

    @classmethod
    def is_simples_nacional(cls, code: Optional[str]) -> bool:
        return cls._normalize(code) in ('1', '2', '4')


class StateRegistrationIndicator(_CodeTable):
    """indIEDest: whether the recipient is an ICMS taxpayer."""

    table_name = 'indicador_ie'
    unknown_description = 'Indicador desconhecido'
