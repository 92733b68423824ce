# Overview: The document type registry, assembled once at startup.

from .discrepancy_service import DR
from .inspection_service import QCI
from .issue_service import MI
from .lifecycle_service import DocumentTypeRegistry
from .receipt_service import GRN
from .return_service import MRN
from .transfer_service import WT

DEFINITIONS = (GRN, MI, MRN, QCI, DR, WT)


def build_registry() -> DocumentTypeRegistry:
    return DocumentTypeRegistry(DEFINITIONS)
