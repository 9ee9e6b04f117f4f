"""
XML parsing modules for NF-e documents.

- xml_tree: namespace-free dict view of the XML (attributes merged,
  repeated elements as lists) plus safe lookup helpers
- danfe_parser: field mapping from that view to FiscalRecord
"""

from .xml_tree import xml_to_dict, to_sequence, get_text, has_nfe_signature
from .danfe_parser import DanfeXmlReader

__all__ = [
    # XML view
    'xml_to_dict',
    'to_sequence',
    'get_text',
    'has_nfe_signature',
    # Record mapping
    'DanfeXmlReader',
]
