"""Document generator implementations."""

from watchcraft.infrastructure.documents.invoice_generator import RepositoryInvoiceGenerator

__all__ = ["RepositoryInvoiceGenerator"]
