"""
Low-level XML helpers for NF-e documents.

NF-e XML is data-oriented: element order is irrelevant to the reader, the
default namespace (http://www.portalfiscal.inf.br/nfe) carries no meaning for
field lookup, and several elements (det, vol, dup, detPag) appear once or many
times. xml_to_dict() flattens all of that into plain dicts so the field
mapping in danfe_parser.py reads like the NF-e layout itself.
"""

import codecs
from typing import Any, Dict, List, Union

from lxml import etree

from danfe_retriever.exceptions import XmlParseError

TEXT_KEY = '_'

XML_DECLARATION = b'<?xml'
NFE_MARKERS = (b'<NFe', b'<nfeProc')


def _strip_preamble(content: bytes) -> bytes:
    """Drop a UTF-8 BOM and leading whitespace before the XML declaration."""
    if content.startswith(codecs.BOM_UTF8):
        content = content[len(codecs.BOM_UTF8):]
    return content.lstrip()


def has_nfe_signature(content: Union[bytes, str]) -> bool:
    """
    Cheap structural check: XML declaration first, NF-e root marker somewhere.

    Example:
        >>> has_nfe_signature(b'<?xml version="1.0"?><nfeProc/>')
        True
        >>> has_nfe_signature(b'<html>Access denied</html>')
        False
    """
    if isinstance(content, str):
        content = content.encode('utf-8')
    content = _strip_preamble(content)
    if not content.startswith(XML_DECLARATION):
        return False
    return any(marker in content for marker in NFE_MARKERS)


def _local_name(tag: str) -> str:
    # '{http://www.portalfiscal.inf.br/nfe}infNFe' -> 'infNFe'
    return etree.QName(tag).localname


def _element_to_value(element) -> Union[str, Dict[str, Any]]:
    children = [child for child in element if isinstance(child.tag, str)]
    text = (element.text or '').strip()

    if not element.attrib and not children:
        return text

    node: Dict[str, Any] = {
        _local_name(name): value for name, value in element.attrib.items()
    }

    for child in children:
        key = _local_name(child.tag)
        value = _element_to_value(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    if text:
        node[TEXT_KEY] = text

    return node


def xml_to_dict(content: Union[bytes, str]) -> Dict[str, Any]:
    """
    Parse XML into nested dicts keyed by local element names.

    Rules:
    - Namespaces are stripped (only local names are kept)
    - Attributes are merged into the element's dict as plain keys
    - A name seen more than once under the same parent becomes a list
      (an attribute and a child sharing a name also merge into a list)
    - Elements without attributes or children become their stripped text
    - Text of an element that also has attributes/children goes under '_'

    Args:
        content: Raw XML bytes (str is encoded as UTF-8)

    Returns:
        Single-key dict: {root_local_name: root_value}

    Raises:
        XmlParseError: If content is empty or not well-formed XML

    Example:
        >>> xml_to_dict(b'<a x="1"><b>2</b><b>3</b></a>')
        {'a': {'x': '1', 'b': ['2', '3']}}
    """
    if isinstance(content, str):
        content = content.encode('utf-8')

    content = _strip_preamble(content)
    if not content:
        raise XmlParseError("Empty XML document")

    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
        huge_tree=True,
    )
    try:
        root = etree.fromstring(content, parser)
    except etree.XMLSyntaxError as e:
        raise XmlParseError(f"Malformed XML: {e}") from e

    return {_local_name(root.tag): _element_to_value(root)}


def to_sequence(node: Any) -> List[Any]:
    """
    Normalize a node that may be absent, single or repeated into a list.

    Example:
        >>> to_sequence(None), to_sequence({'a': '1'}), to_sequence(['x', 'y'])
        ([], [{'a': '1'}], ['x', 'y'])
    """
    if node is None:
        return []
    if isinstance(node, list):
        return node
    return [node]


def get_text(node: Any, *path: str, default: str = '') -> str:
    """
    Descend through nested dicts and return the string found at path.

    Missing steps, non-dict intermediates and non-string leaves all yield
    default. A dict leaf carrying text under '_' yields that text.

    Example:
        >>> tree = {'ide': {'nNF': '619872'}}
        >>> get_text(tree, 'ide', 'nNF')
        '619872'
        >>> get_text(tree, 'ide', 'serie', default='0')
        '0'
    """
    current = node
    for key in path:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default

    if isinstance(current, str):
        return current
    if isinstance(current, dict) and isinstance(current.get(TEXT_KEY), str):
        return current[TEXT_KEY]
    return default
