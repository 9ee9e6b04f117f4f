"""
NF-e XML to FiscalRecord mapping.

Handles both layouts served by the portal:
- nfeProc envelope: <nfeProc><NFe><infNFe>...</infNFe></NFe><protNFe>...</protNFe></nfeProc>
- Plain document:   <NFe><infNFe>...</infNFe></NFe>

Field values are copied verbatim as strings; no amounts are recomputed and no
codes are interpreted here (see danfe_retriever.types for code descriptions).
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from danfe_retriever.exceptions import XmlParseError
from danfe_retriever.log import mask_access_key
from danfe_retriever.models.payload import RawDocumentPayload
from danfe_retriever.models.record import (
    AdditionalInfo,
    Address,
    AuthorizationProtocol,
    Billing,
    Carrier,
    CofinsTax,
    DeliveryParty,
    FiscalRecord,
    IcmsTax,
    Installment,
    Invoice,
    IpiTax,
    Issuer,
    ItemTaxes,
    NFeHeader,
    Payment,
    PisTax,
    ProductItem,
    Recipient,
    Totals,
    Transport,
    Volume,
)
from danfe_retriever.parsers.xml_tree import (
    get_text,
    has_nfe_signature,
    to_sequence,
    xml_to_dict,
)

logger = logging.getLogger(__name__)

ENVELOPE_ROOT = 'nfeProc'
DOCUMENT_ROOT = 'NFe'
ID_PREFIX = 'NFe'
NO_GTIN = 'SEM GTIN'


def _first_group(parent: Any) -> Tuple[str, Dict[str, Any]]:
    """
    Return the first tax group element under a tax parent.

    <ICMS><ICMS00>...</ICMS00></ICMS> -> ('ICMS00', {...})
    <IPI><cEnq>999</cEnq><IPITrib>...</IPITrib></IPI> -> ('IPITrib', {...})
    """
    if isinstance(parent, dict):
        for name, value in parent.items():
            if isinstance(value, dict):
                return name, value
    return '', {}


def _first_value(node: Any) -> Any:
    if isinstance(node, list):
        return node[0] if node else None
    if isinstance(node, dict):
        return next(iter(node.values()), None)
    return node


class DanfeXmlReader:
    """
    Normalize NF-e XML into FiscalRecord instances.

    Stateless: one reader can parse any number of documents, and parsing the
    same bytes twice yields equal records.

    Example:
        >>> reader = DanfeXmlReader()
        >>> record = reader.read_and_parse('downloads/NFe3524....xml')
        >>> record.emitente.razao_social
        'CEBRACE CRISTAL PLANO LTDA'
    """

    def parse(self, payload: RawDocumentPayload) -> FiscalRecord:
        """
        Parse a downloaded payload.

        Args:
            payload: Raw XML bytes with their file name

        Returns:
            FiscalRecord with every required leaf populated ("" when absent)

        Raises:
            XmlParseError: If the XML is malformed, the root is not nfeProc/NFe,
                infNFe is missing, the access key cannot be found, or the
                document has no line items
        """
        tree = xml_to_dict(payload.content)
        root_name, root = next(iter(tree.items()))

        if root_name == ENVELOPE_ROOT:
            document = root.get('NFe') if isinstance(root, dict) else None
            protocol_node = root.get('protNFe') if isinstance(root, dict) else None
        elif root_name == DOCUMENT_ROOT:
            document = root
            protocol_node = None
        else:
            raise XmlParseError(
                f"Unexpected root element <{root_name}>",
                details={'file_name': payload.file_name}
            )

        inf = document.get('infNFe') if isinstance(document, dict) else None
        if not isinstance(inf, dict):
            raise XmlParseError(
                "infNFe element not found",
                details={'file_name': payload.file_name}
            )

        access_key = self._extract_access_key(inf, protocol_node)

        items = [self._parse_item(det) for det in to_sequence(inf.get('det')) if isinstance(det, dict)]
        if not items:
            raise XmlParseError(
                "Document has no line items (det)",
                details={'file_name': payload.file_name}
            )

        total = inf.get('total')
        icms_tot = total.get('ICMSTot') if isinstance(total, dict) else None

        record = FiscalRecord(
            nfe=self._parse_header(inf, access_key, icms_tot),
            emitente=self._parse_issuer(inf.get('emit')),
            destinatario=self._parse_recipient(inf.get('dest')),
            entrega=self._parse_delivery(inf.get('entrega')),
            produtos=items,
            totais=self._parse_totals(icms_tot),
            transporte=self._parse_transport(inf.get('transp')),
            cobranca=self._parse_billing(inf.get('cobr')),
            pagamento=self._parse_payments(inf.get('pag')),
            informacoes_adicionais=self._parse_additional_info(inf.get('infAdic')),
            protocolo=self._parse_protocol(protocol_node),
        )

        logger.debug(
            f"Parsed {root_name} {mask_access_key(access_key)}: "
            f"{len(items)} item(s), vNF={record.nfe.valor_total}"
        )
        return record

    def read_and_parse(self, path: Union[str, Path]) -> FiscalRecord:
        """
        Parse a previously saved XML file.

        Raises:
            FileNotFoundError: If the file does not exist
            XmlParseError: See parse()
        """
        return self.parse(RawDocumentPayload.from_path(path))

    def validate(self, path: Union[str, Path]) -> bool:
        """Quick structural pre-check of a file on disk. Never raises."""
        try:
            content = Path(path).read_bytes()
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            return False
        return has_nfe_signature(content)

    # === Identification ===

    def _extract_access_key(self, inf: Dict[str, Any], protocol_node: Any) -> str:
        # Id may be an attribute, a child element, or both (merged into a list)
        raw_id = _first_value(inf.get('Id'))
        if isinstance(raw_id, dict):
            raw_id = _first_value(raw_id)

        key = raw_id.strip() if isinstance(raw_id, str) else ''
        if key.startswith(ID_PREFIX):
            key = key[len(ID_PREFIX):]

        if not key:
            key = get_text(protocol_node, 'infProt', 'chNFe').strip()

        if not key:
            raise XmlParseError("Access key not found in infNFe/Id or protNFe/infProt/chNFe")
        return key

    def _parse_header(self, inf: Dict[str, Any], access_key: str, icms_tot: Any) -> NFeHeader:
        ide = inf.get('ide')
        return NFeHeader(
            chave_acesso=access_key,
            numero=get_text(ide, 'nNF'),
            serie=get_text(ide, 'serie'),
            data_emissao=get_text(ide, 'dhEmi') or get_text(ide, 'dEmi'),
            valor_total=get_text(icms_tot, 'vNF'),
            natureza_operacao=get_text(ide, 'natOp'),
            tipo_nf=get_text(ide, 'tpNF'),
            ambiente=get_text(ide, 'tpAmb'),
            finalidade=get_text(ide, 'finNFe'),
            codigo_numerico=get_text(ide, 'cNF'),
            digito_verificador=get_text(ide, 'cDV'),
            modelo=get_text(ide, 'mod'),
            indicador_presenca=get_text(ide, 'indPres'),
            indicador_final=get_text(ide, 'indFinal'),
            indicador_destino=get_text(ide, 'idDest'),
            tipo_emissao=get_text(ide, 'tpEmis'),
        )

    # === Parties ===

    def _parse_address(self, ender: Any) -> Address:
        return Address(
            logradouro=get_text(ender, 'xLgr'),
            numero=get_text(ender, 'nro'),
            complemento=get_text(ender, 'xCpl'),
            bairro=get_text(ender, 'xBairro'),
            municipio=get_text(ender, 'xMun'),
            uf=get_text(ender, 'UF'),
            cep=get_text(ender, 'CEP'),
            telefone=get_text(ender, 'fone'),
            codigo_municipio=get_text(ender, 'cMun'),
            codigo_pais=get_text(ender, 'cPais'),
            nome_pais=get_text(ender, 'xPais'),
        )

    def _parse_issuer(self, emit: Any) -> Issuer:
        return Issuer(
            cnpj=get_text(emit, 'CNPJ') or get_text(emit, 'CPF'),
            razao_social=get_text(emit, 'xNome'),
            nome_fantasia=get_text(emit, 'xFant') or None,
            endereco=self._parse_address(emit.get('enderEmit') if isinstance(emit, dict) else None),
            inscricao_estadual=get_text(emit, 'IE'),
            codigo_regime_tributario=get_text(emit, 'CRT'),
        )

    def _parse_recipient(self, dest: Any) -> Recipient:
        return Recipient(
            cpf_cnpj=(
                get_text(dest, 'CPF')
                or get_text(dest, 'CNPJ')
                or get_text(dest, 'idEstrangeiro')
            ),
            nome=get_text(dest, 'xNome'),
            endereco=self._parse_address(dest.get('enderDest') if isinstance(dest, dict) else None),
            inscricao_estadual=get_text(dest, 'IE'),
            indicador_ie=get_text(dest, 'indIEDest'),
        )

    def _parse_delivery(self, entrega: Any) -> Optional[DeliveryParty]:
        if not isinstance(entrega, dict):
            return None
        # <entrega> carries its address fields inline
        return DeliveryParty(
            nome=get_text(entrega, 'xNome'),
            cpf_cnpj=get_text(entrega, 'CNPJ') or get_text(entrega, 'CPF'),
            endereco=self._parse_address(entrega),
            inscricao_estadual=get_text(entrega, 'IE'),
            email=get_text(entrega, 'email'),
        )

    # === Items ===

    def _parse_item(self, det: Dict[str, Any]) -> ProductItem:
        prod = det.get('prod')
        ean = get_text(prod, 'cEAN')
        ean_trib = get_text(prod, 'cEANTrib')

        return ProductItem(
            numero_item=get_text(det, 'nItem'),
            codigo=get_text(prod, 'cProd'),
            descricao=get_text(prod, 'xProd'),
            quantidade=get_text(prod, 'qCom'),
            unidade=get_text(prod, 'uCom'),
            valor_unitario=get_text(prod, 'vUnCom'),
            valor_total=get_text(prod, 'vProd'),
            ncm=get_text(prod, 'NCM'),
            cfop=get_text(prod, 'CFOP'),
            cest=get_text(prod, 'CEST'),
            codigo_ean='' if ean == NO_GTIN else ean,
            codigo_ean_tributavel='' if ean_trib == NO_GTIN else ean_trib,
            unidade_tributavel=get_text(prod, 'uTrib'),
            quantidade_tributavel=get_text(prod, 'qTrib'),
            valor_unitario_tributavel=get_text(prod, 'vUnTrib'),
            indicador_total=get_text(prod, 'indTot'),
            informacoes_adicionais=get_text(det, 'infAdProd'),
            impostos=self._parse_item_taxes(det.get('imposto')),
        )

    def _parse_item_taxes(self, imposto: Any) -> ItemTaxes:
        if not isinstance(imposto, dict):
            return ItemTaxes()

        icms_name, icms = _first_group(imposto.get('ICMS'))

        ipi = None
        if isinstance(imposto.get('IPI'), dict):
            ipi_parent = imposto['IPI']
            ipi_name, ipi_group = _first_group(ipi_parent)
            ipi = IpiTax(
                grupo=ipi_name,
                cst=get_text(ipi_group, 'CST'),
                codigo_enquadramento=get_text(ipi_parent, 'cEnq'),
                base_calculo=get_text(ipi_group, 'vBC'),
                aliquota=get_text(ipi_group, 'pIPI'),
                valor=get_text(ipi_group, 'vIPI'),
            )

        pis = None
        if isinstance(imposto.get('PIS'), dict):
            pis_name, pis_group = _first_group(imposto['PIS'])
            pis = PisTax(
                grupo=pis_name,
                cst=get_text(pis_group, 'CST'),
                base_calculo=get_text(pis_group, 'vBC'),
                aliquota=get_text(pis_group, 'pPIS'),
                valor=get_text(pis_group, 'vPIS'),
            )

        cofins = None
        if isinstance(imposto.get('COFINS'), dict):
            cofins_name, cofins_group = _first_group(imposto['COFINS'])
            cofins = CofinsTax(
                grupo=cofins_name,
                cst=get_text(cofins_group, 'CST'),
                base_calculo=get_text(cofins_group, 'vBC'),
                aliquota=get_text(cofins_group, 'pCOFINS'),
                valor=get_text(cofins_group, 'vCOFINS'),
            )

        return ItemTaxes(
            icms=IcmsTax(
                grupo=icms_name,
                origem=get_text(icms, 'orig'),
                cst=get_text(icms, 'CST') or get_text(icms, 'CSOSN'),
                modalidade_bc=get_text(icms, 'modBC'),
                base_calculo=get_text(icms, 'vBC'),
                aliquota=get_text(icms, 'pICMS'),
                valor=get_text(icms, 'vICMS'),
            ),
            ipi=ipi,
            pis=pis,
            cofins=cofins,
            valor_tributos=get_text(imposto, 'vTotTrib'),
        )

    # === Totals ===

    def _parse_totals(self, icms_tot: Any) -> Totals:
        return Totals(
            valor_produtos=get_text(icms_tot, 'vProd'),
            valor_nota=get_text(icms_tot, 'vNF'),
            valor_icms=get_text(icms_tot, 'vICMS'),
            valor_ipi=get_text(icms_tot, 'vIPI'),
            valor_pis=get_text(icms_tot, 'vPIS'),
            valor_cofins=get_text(icms_tot, 'vCOFINS'),
            valor_tributos=get_text(icms_tot, 'vTotTrib'),
            base_calculo_icms=get_text(icms_tot, 'vBC'),
            base_calculo_st=get_text(icms_tot, 'vBCST'),
            valor_st=get_text(icms_tot, 'vST'),
            valor_frete=get_text(icms_tot, 'vFrete'),
            valor_seguro=get_text(icms_tot, 'vSeg'),
            valor_desconto=get_text(icms_tot, 'vDesc'),
            valor_outros=get_text(icms_tot, 'vOutro'),
            valor_ii=get_text(icms_tot, 'vII'),
            valor_icms_desonerado=get_text(icms_tot, 'vICMSDeson'),
            valor_fcp=get_text(icms_tot, 'vFCP'),
            valor_fcp_st=get_text(icms_tot, 'vFCPST'),
            valor_fcp_st_ret=get_text(icms_tot, 'vFCPSTRet'),
            valor_ipi_devolvido=get_text(icms_tot, 'vIPIDevol'),
        )

    # === Transport, billing, payment ===

    def _parse_transport(self, transp: Any) -> Transport:
        if not isinstance(transp, dict):
            return Transport()

        carrier = None
        transporta = transp.get('transporta')
        if isinstance(transporta, dict):
            carrier = Carrier(
                nome=get_text(transporta, 'xNome'),
                cnpj=get_text(transporta, 'CNPJ') or get_text(transporta, 'CPF'),
                inscricao_estadual=get_text(transporta, 'IE'),
                endereco=get_text(transporta, 'xEnder'),
                municipio=get_text(transporta, 'xMun'),
                uf=get_text(transporta, 'UF'),
            )

        volumes: List[Volume] = [
            Volume(
                quantidade=get_text(vol, 'qVol'),
                especie=get_text(vol, 'esp'),
                peso_liquido=get_text(vol, 'pesoL'),
                peso_bruto=get_text(vol, 'pesoB'),
                marca=get_text(vol, 'marca'),
                numeracao=get_text(vol, 'nVol'),
            )
            for vol in to_sequence(transp.get('vol'))
            if isinstance(vol, dict)
        ]

        return Transport(
            modalidade_frete=get_text(transp, 'modFrete'),
            transportadora=carrier,
            volumes=volumes or None,
        )

    def _parse_billing(self, cobr: Any) -> Optional[Billing]:
        if not isinstance(cobr, dict):
            return None

        fat = cobr.get('fat')
        invoice = None
        if isinstance(fat, dict):
            invoice = Invoice(
                numero=get_text(fat, 'nFat'),
                valor_original=get_text(fat, 'vOrig'),
                valor_desconto=get_text(fat, 'vDesc'),
                valor_liquido=get_text(fat, 'vLiq'),
            )

        installments = [
            Installment(
                numero=get_text(dup, 'nDup'),
                data_vencimento=get_text(dup, 'dVenc'),
                valor=get_text(dup, 'vDup'),
            )
            for dup in to_sequence(cobr.get('dup'))
            if isinstance(dup, dict)
        ]

        return Billing(fatura=invoice, duplicatas=installments or None)

    def _parse_payments(self, pag: Any) -> Optional[List[Payment]]:
        # Layout 4.00 nests entries in <detPag>; 3.10 repeats <pag> itself
        if isinstance(pag, dict) and 'detPag' in pag:
            entries = to_sequence(pag['detPag'])
        else:
            entries = to_sequence(pag)

        payments = [
            Payment(
                forma=get_text(entry, 'tPag'),
                valor=get_text(entry, 'vPag'),
                indicador_pagamento=get_text(entry, 'indPag'),
            )
            for entry in entries
            if isinstance(entry, dict)
        ]
        return payments or None

    # === Supplementary ===

    def _parse_additional_info(self, inf_adic: Any) -> Optional[AdditionalInfo]:
        if not isinstance(inf_adic, dict):
            return None
        return AdditionalInfo(
            informacoes_complementares=get_text(inf_adic, 'infCpl'),
            informacoes_fisco=get_text(inf_adic, 'infAdFisco'),
        )

    def _parse_protocol(self, protocol_node: Any) -> Optional[AuthorizationProtocol]:
        inf_prot = protocol_node.get('infProt') if isinstance(protocol_node, dict) else None
        if not isinstance(inf_prot, dict):
            return None
        return AuthorizationProtocol(
            numero=get_text(inf_prot, 'nProt'),
            data_recebimento=get_text(inf_prot, 'dhRecbto'),
            motivo=get_text(inf_prot, 'xMotivo'),
            codigo_status=get_text(inf_prot, 'cStat'),
            digest_value=get_text(inf_prot, 'digVal'),
            chave_nfe=get_text(inf_prot, 'chNFe'),
        )
