"""
Pydantic models for request validation and normalized NF-e records.

This module contains type-safe models that integrate validators
and provide clean interfaces for service layer operations.
"""

from danfe_retriever.models.requests import FetchRequest
from danfe_retriever.models.access_key import AccessKeyComponents
from danfe_retriever.models.payload import RawDocumentPayload
from danfe_retriever.models.record import (
    FiscalRecord,
    NFeHeader,
    Address,
    Issuer,
    Recipient,
    DeliveryParty,
    ProductItem,
    ItemTaxes,
    IcmsTax,
    IpiTax,
    PisTax,
    CofinsTax,
    Totals,
    Transport,
    Carrier,
    Volume,
    Billing,
    Invoice,
    Installment,
    Payment,
    AdditionalInfo,
    AuthorizationProtocol,
)

__all__ = [
    'FetchRequest',
    'AccessKeyComponents',
    'RawDocumentPayload',
    'FiscalRecord',
    'NFeHeader',
    'Address',
    'Issuer',
    'Recipient',
    'DeliveryParty',
    'ProductItem',
    'ItemTaxes',
    'IcmsTax',
    'IpiTax',
    'PisTax',
    'CofinsTax',
    'Totals',
    'Transport',
    'Carrier',
    'Volume',
    'Billing',
    'Invoice',
    'Installment',
    'Payment',
    'AdditionalInfo',
    'AuthorizationProtocol',
]
