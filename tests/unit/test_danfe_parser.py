"""
Unit tests for DanfeXmlReader (NF-e XML -> FiscalRecord).

Uses tests/fixtures:
- nfe_proc_sample.xml: authorized nfeProc envelope, one item, every optional block
- nfe_plain_multi_item.xml: plain NFe root, two items, Simples Nacional, no protocol
"""

import pytest

from danfe_retriever.exceptions import XmlParseError
from danfe_retriever.models.payload import RawDocumentPayload
from danfe_retriever.models.record import FiscalRecord
from danfe_retriever.parsers.danfe_parser import DanfeXmlReader
from danfe_retriever.types import OperationType


def _payload(xml: str) -> RawDocumentPayload:
    return RawDocumentPayload(content=xml.encode('utf-8'), file_name='test.xml')


def _minimal_nfe(inf_body: str, inf_attrs: str = 'Id="NFe35241145070190000232550010006198721341979067"') -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<NFe xmlns="http://www.portalfiscal.inf.br/nfe">'
        f'<infNFe {inf_attrs} versao="4.00">{inf_body}</infNFe>'
        '</NFe>'
    )


MINIMAL_DET = '<det nItem="1"><prod><cProd>1</cProd><vProd>10.00</vProd></prod></det>'


@pytest.fixture
def reader():
    return DanfeXmlReader()


@pytest.fixture
def record(reader, sample_payload) -> FiscalRecord:
    return reader.parse(sample_payload)


@pytest.fixture
def plain_record(reader, plain_payload) -> FiscalRecord:
    return reader.parse(plain_payload)


class TestEnvelopeDocument:
    """Field mapping of the nfeProc sample."""

    def test_access_key_from_id_attribute(self, record, sample_key):
        """Id="NFe<key>" yields the bare 44-digit key."""
        assert record.nfe.chave_acesso == sample_key
        assert record.chave_acesso == sample_key

    def test_header(self, record):
        nfe = record.nfe
        assert nfe.numero == '619872'
        assert nfe.serie == '1'
        assert nfe.data_emissao == '2024-11-06T01:05:25-03:00'
        assert nfe.valor_total == '52964.34'
        assert nfe.natureza_operacao == 'VND.PROD.EST.REM.IND.CNT.ORD.ADQ.S/ TRAN.EST.ADQ.'
        assert nfe.tipo_nf == '1'
        assert nfe.ambiente == '1'
        assert nfe.finalidade == '1'
        assert nfe.codigo_numerico == '34197906'
        assert nfe.digito_verificador == '7'
        assert nfe.modelo == '55'
        assert nfe.indicador_presenca == '9'
        assert nfe.indicador_final == '0'
        assert nfe.indicador_destino == '2'
        assert nfe.tipo_emissao == '1'

    def test_operation_type_is_interpreted_outside_the_parser(self, record):
        """tpNF=1 stays the raw code; OperationType says it is outbound."""
        assert record.nfe.tipo_nf == '1'
        assert OperationType.is_saida(record.nfe.tipo_nf)
        assert not OperationType.is_entrada(record.nfe.tipo_nf)

    def test_issuer(self, record):
        emit = record.emitente
        assert emit.cnpj == '45070190000232'
        assert emit.razao_social == 'CEBRACE CRISTAL PLANO LTDA'
        assert emit.nome_fantasia == 'CEBRACE CRISTAL PLANO LTDA'
        assert emit.inscricao_estadual == '392031160119'
        assert emit.codigo_regime_tributario == '3'
        assert emit.endereco.logradouro == 'AV DO CRISTAL'
        assert emit.endereco.numero == '540'
        assert emit.endereco.municipio == 'JACAREÍ'
        assert emit.endereco.uf == 'SP'
        assert emit.endereco.cep == '12311210'
        assert emit.endereco.codigo_municipio == '3524402'
        assert emit.endereco.nome_pais == 'BRASIL'
        assert emit.endereco.complemento == ''

    def test_recipient(self, record):
        dest = record.destinatario
        assert dest.cpf_cnpj == '48985779000178'
        assert dest.nome == 'VIDRANNO IND E ATACADO LTDA48985779000178'
        assert dest.inscricao_estadual == '0818607500151'
        assert dest.indicador_ie == '1'
        assert dest.endereco.uf == 'DF'

    def test_delivery_party(self, record):
        entrega = record.entrega
        assert entrega is not None
        assert entrega.cpf_cnpj == '45524426000182'
        assert entrega.email == 'administrativo@vidranno.com.br'
        assert entrega.inscricao_estadual == '0811999300110'
        assert entrega.endereco.logradouro == 'QI 12 S/N LOTE 09 A 11'
        assert entrega.endereco.cep == '72135120'

    def test_single_item(self, record):
        assert len(record.produtos) == 1
        item = record.produtos[0]

        assert item.numero_item == '1'
        assert item.codigo == '2050571'
        assert item.descricao == 'Vidro Cebrace Float 8.0mm |3600x2200mm |Incolor'
        assert item.quantidade == '443.5200'
        assert item.unidade == 'M2'
        assert item.valor_unitario == '74.7531340188'
        assert item.valor_total == '33154.51'
        assert item.ncm == '70052900'
        assert item.cfop == '6122'
        assert item.cest == '1003500'
        assert item.indicador_total == '1'
        assert item.informacoes_adicionais == '0111644302 14 PL JC1;'

    def test_sem_gtin_maps_to_empty(self, record):
        item = record.produtos[0]
        assert item.codigo_ean == ''
        assert item.codigo_ean_tributavel == ''

    def test_item_taxes(self, record):
        taxes = record.produtos[0].impostos

        assert taxes.valor_tributos == '7327.98'

        assert taxes.icms.grupo == 'ICMS00'
        assert taxes.icms.origem == '0'
        assert taxes.icms.cst == '00'
        assert taxes.icms.modalidade_bc == '3'
        assert taxes.icms.base_calculo == '33154.51'
        assert taxes.icms.aliquota == '7.0000'
        assert taxes.icms.valor == '2320.82'

        assert taxes.ipi.grupo == 'IPITrib'
        assert taxes.ipi.codigo_enquadramento == '999'
        assert taxes.ipi.cst == '50'
        assert taxes.ipi.aliquota == '6.5000'
        assert taxes.ipi.valor == '2155.04'

        assert taxes.pis.grupo == 'PISAliq'
        assert taxes.pis.cst == '01'
        assert taxes.pis.valor == '508.76'

        assert taxes.cofins.grupo == 'COFINSAliq'
        assert taxes.cofins.aliquota == '7.6000'
        assert taxes.cofins.valor == '2343.36'

    def test_totals_are_verbatim(self, record):
        """Totals come from ICMSTot, never from summing items."""
        totais = record.totais

        assert totais.valor_produtos == '49731.78'
        assert totais.valor_produtos != record.produtos[0].valor_total
        assert totais.valor_nota == '52964.34'
        assert totais.valor_icms == '3481.23'
        assert totais.valor_ipi == '3232.56'
        assert totais.valor_pis == '763.14'
        assert totais.valor_cofins == '3515.04'
        assert totais.valor_tributos == '10991.97'
        assert totais.base_calculo_icms == '49731.78'
        assert totais.valor_frete == '0'
        assert totais.valor_seguro == '0'
        assert totais.valor_ipi_devolvido == '0.00'

    def test_transport(self, record):
        transp = record.transporte
        assert transp.modalidade_frete == '0'
        assert transp.transportadora.nome == 'JULIO SIMOES 670352548435006703'
        assert transp.transportadora.cnpj == '52548435006703'
        assert transp.transportadora.municipio == 'SÃO JOSÉ DOS CAMPOS'
        assert len(transp.volumes) == 1
        assert transp.volumes[0].quantidade == '84'
        assert transp.volumes[0].especie == 'Chapa de Vidro'
        assert transp.volumes[0].peso_bruto == '13159.272'

    def test_billing(self, record):
        cobr = record.cobranca
        assert cobr.fatura.numero == '619872-001'
        assert cobr.fatura.valor_liquido == '52964.34'
        assert len(cobr.duplicatas) == 1
        assert cobr.duplicatas[0].numero == '001'
        assert cobr.duplicatas[0].data_vencimento == '2024-11-07'

    def test_payment(self, record):
        assert len(record.pagamento) == 1
        assert record.pagamento[0].forma == '15'
        assert record.pagamento[0].valor == '52964.34'
        assert record.pagamento[0].indicador_pagamento == '1'

    def test_additional_info(self, record):
        info = record.informacoes_adicionais
        assert info.informacoes_complementares.startswith('Mercadorias enviadas p/ Industrialização')
        assert info.informacoes_fisco == ''

    def test_protocol(self, record, sample_key):
        prot = record.protocolo
        assert prot.numero == '135242516625465'
        assert prot.data_recebimento == '2024-11-06T01:05:41-03:00'
        assert prot.motivo == 'Autorizado o uso da NF-e'
        assert prot.codigo_status == '100'
        assert prot.digest_value == '75PrrzDHG1ewaTOJa3BBXJDn+Zs='
        assert prot.chave_nfe == sample_key

    def test_serialization_uses_camel_case_aliases(self, record, sample_key):
        data = record.to_dict()

        assert data['nfe']['chaveAcesso'] == sample_key
        assert data['nfe']['tipoNF'] == '1'
        assert data['emitente']['razaoSocial'] == 'CEBRACE CRISTAL PLANO LTDA'
        assert data['destinatario']['indicadorIE'] == '1'
        assert data['produtos'][0]['codigoEAN'] == ''
        assert data['produtos'][0]['impostos']['icms']['modalidadeBC'] == '3'
        assert data['totais']['valorICMS'] == '3481.23'
        assert data['totais']['valorIPIDevolvido'] == '0.00'
        assert data['protocolo']['chaveNFe'] == sample_key
        assert data['cobranca']['duplicatas'][0]['dataVencimento'] == '2024-11-07'


class TestPlainDocument:
    """Field mapping of the plain NFe sample (no envelope)."""

    def test_access_key(self, plain_record, plain_key):
        assert plain_record.nfe.chave_acesso == plain_key

    def test_legacy_emission_date(self, plain_record):
        """Layout 3.10 dEmi is used when dhEmi is absent."""
        assert plain_record.nfe.data_emissao == '2024-11-05'

    def test_inbound_operation(self, plain_record):
        assert plain_record.nfe.tipo_nf == '0'
        assert OperationType.is_entrada(plain_record.nfe.tipo_nf)

    def test_items_keep_source_order(self, plain_record):
        assert [item.numero_item for item in plain_record.produtos] == ['1', '2']
        assert [item.codigo for item in plain_record.produtos] == ['A-1', 'B-2']

    def test_gtin_kept_when_present(self, plain_record):
        assert plain_record.produtos[0].codigo_ean == '7891234567895'
        assert plain_record.produtos[1].codigo_ean == ''

    def test_simples_nacional_icms_group(self, plain_record):
        icms = plain_record.produtos[0].impostos.icms
        assert icms.grupo == 'ICMSSN102'
        assert icms.cst == '102'
        assert icms.valor == ''

    def test_absent_tax_groups_are_none(self, plain_record):
        first, second = plain_record.produtos
        assert first.impostos.ipi is None
        assert first.impostos.pis.grupo == 'PISNT'
        assert first.impostos.pis.cst == '07'
        assert second.impostos.pis is None
        assert second.impostos.cofins is None

    def test_recipient_cpf(self, plain_record):
        assert plain_record.destinatario.cpf_cnpj == '12345678909'
        assert plain_record.destinatario.indicador_ie == '9'

    def test_issuer_without_trade_name(self, plain_record):
        assert plain_record.emitente.nome_fantasia is None
        assert plain_record.emitente.endereco.complemento == 'SALA 2'
        assert plain_record.emitente.endereco.telefone == ''

    def test_absent_optional_blocks_are_none(self, plain_record):
        assert plain_record.entrega is None
        assert plain_record.cobranca is None
        assert plain_record.informacoes_adicionais is None
        assert plain_record.protocolo is None
        assert plain_record.transporte.transportadora is None
        assert plain_record.transporte.volumes is None
        assert plain_record.transporte.modalidade_frete == '9'

    def test_missing_totals_default_to_empty(self, plain_record):
        assert plain_record.totais.valor_nota == '75.00'
        assert plain_record.totais.valor_ipi == ''
        assert plain_record.totais.valor_fcp_st_ret == ''

    def test_multiple_payments(self, plain_record):
        assert [(p.forma, p.valor) for p in plain_record.pagamento] == [
            ('01', '50.00'),
            ('17', '25.00'),
        ]

    def test_serialization_omits_absent_blocks(self, plain_record):
        data = plain_record.to_dict()

        assert 'protocolo' not in data
        assert 'cobranca' not in data
        assert 'entrega' not in data
        assert 'nomeFantasia' not in data['emitente']
        assert 'ipi' not in data['produtos'][0]['impostos']
        assert data['totais']['valorIPI'] == ''


class TestParsingProperties:
    """Idempotence and single-vs-list invariants."""

    def test_parse_is_idempotent(self, reader, sample_payload):
        assert reader.parse(sample_payload) == reader.parse(sample_payload)

    def test_reader_is_stateless_across_documents(self, reader, sample_payload, plain_payload):
        first = reader.parse(sample_payload)
        reader.parse(plain_payload)
        assert reader.parse(sample_payload) == first

    def test_single_det_yields_one_item(self, reader):
        record = reader.parse(_payload(_minimal_nfe(MINIMAL_DET)))
        assert len(record.produtos) == 1

    def test_two_det_yield_two_items(self, reader):
        second = MINIMAL_DET.replace('nItem="1"', 'nItem="2"')
        record = reader.parse(_payload(_minimal_nfe(MINIMAL_DET + second)))
        assert [item.numero_item for item in record.produtos] == ['1', '2']

    def test_single_and_repeated_volumes(self, reader):
        one = '<transp><modFrete>0</modFrete><vol><qVol>1</qVol></vol></transp>'
        two = '<transp><modFrete>0</modFrete><vol><qVol>1</qVol></vol><vol><qVol>2</qVol></vol></transp>'

        assert len(reader.parse(_payload(_minimal_nfe(MINIMAL_DET + one))).transporte.volumes) == 1
        assert len(reader.parse(_payload(_minimal_nfe(MINIMAL_DET + two))).transporte.volumes) == 2

    def test_round_trip_of_optional_blocks(self, reader):
        """An optional block present in the XML is present in the record, and vice versa."""
        cobr = '<cobr><dup><nDup>001</nDup><dVenc>2024-12-01</dVenc><vDup>10.00</vDup></dup></cobr>'

        without = reader.parse(_payload(_minimal_nfe(MINIMAL_DET)))
        with_cobr = reader.parse(_payload(_minimal_nfe(MINIMAL_DET + cobr)))

        assert without.cobranca is None
        assert with_cobr.cobranca.fatura is None
        assert with_cobr.cobranca.duplicatas[0].valor == '10.00'


class TestAccessKeyExtraction:
    """Id attribute/element variants and the protocol fallback."""

    def test_id_as_attribute_and_element(self, reader, sample_key):
        body = f'<Id>NFe{sample_key}</Id>' + MINIMAL_DET
        record = reader.parse(_payload(_minimal_nfe(body)))
        assert record.nfe.chave_acesso == sample_key

    def test_id_without_prefix(self, reader, sample_key):
        record = reader.parse(_payload(_minimal_nfe(MINIMAL_DET, inf_attrs=f'Id="{sample_key}"')))
        assert record.nfe.chave_acesso == sample_key

    def test_falls_back_to_protocol_key(self, reader, sample_key):
        xml = (
            '<?xml version="1.0"?>'
            '<nfeProc xmlns="http://www.portalfiscal.inf.br/nfe">'
            f'<NFe><infNFe versao="4.00">{MINIMAL_DET}</infNFe></NFe>'
            f'<protNFe><infProt><chNFe>{sample_key}</chNFe></infProt></protNFe>'
            '</nfeProc>'
        )
        record = reader.parse(_payload(xml))
        assert record.nfe.chave_acesso == sample_key

    def test_missing_key_raises(self, reader):
        with pytest.raises(XmlParseError, match="Access key not found"):
            reader.parse(_payload(_minimal_nfe(MINIMAL_DET, inf_attrs='')))


class TestStructuralErrors:
    """Documents that cannot produce a complete record."""

    def test_unexpected_root(self, reader):
        with pytest.raises(XmlParseError, match="Unexpected root"):
            reader.parse(_payload('<?xml version="1.0"?><html><body>Erro</body></html>'))

    def test_missing_inf_nfe(self, reader):
        with pytest.raises(XmlParseError, match="infNFe"):
            reader.parse(_payload('<?xml version="1.0"?><nfeProc><NFe/></nfeProc>'))

    def test_no_line_items(self, reader):
        with pytest.raises(XmlParseError, match="no line items"):
            reader.parse(_payload(_minimal_nfe('<ide><nNF>1</nNF></ide>')))

    def test_malformed_xml(self, reader):
        with pytest.raises(XmlParseError):
            reader.parse(_payload('<?xml version="1.0"?><NFe><infNFe>'))

    def test_error_carries_file_name(self, reader):
        with pytest.raises(XmlParseError) as exc_info:
            reader.parse(_payload('<?xml version="1.0"?><html/>'))
        assert exc_info.value.details['file_name'] == 'test.xml'


class TestFileHelpers:
    """read_and_parse() and validate()."""

    def test_read_and_parse(self, reader, fixtures_dir, sample_key):
        record = reader.read_and_parse(fixtures_dir / 'nfe_proc_sample.xml')
        assert record.nfe.chave_acesso == sample_key

    def test_read_and_parse_accepts_str_path(self, reader, fixtures_dir, plain_key):
        record = reader.read_and_parse(str(fixtures_dir / 'nfe_plain_multi_item.xml'))
        assert record.nfe.chave_acesso == plain_key

    def test_read_and_parse_missing_file(self, reader, tmp_path):
        with pytest.raises(FileNotFoundError):
            reader.read_and_parse(tmp_path / 'missing.xml')

    def test_validate_accepts_fixture(self, reader, fixtures_dir):
        assert reader.validate(fixtures_dir / 'nfe_proc_sample.xml') is True

    def test_validate_rejects_html(self, reader, tmp_path):
        path = tmp_path / 'page.html'
        path.write_text('<html>Checking your browser</html>', encoding='utf-8')
        assert reader.validate(path) is False

    def test_validate_never_raises_for_missing_file(self, reader, tmp_path):
        assert reader.validate(tmp_path / 'missing.xml') is False
