"""Document services module"""

from docintel.documents.services.ledger import (
    StatusLedger,
    InMemoryStatusLedger,
    DynamoDBStatusLedger,
)
from docintel.documents.services.upload_service import (
    UploadCoordinator,
    UploadCredential,
)
from docintel.documents.services.filenames import (
    sanitize_filename,
    validate_filename,
)

__all__ = [
    'StatusLedger',
    'InMemoryStatusLedger',
    'DynamoDBStatusLedger',
    'UploadCoordinator',
    'UploadCredential',
    'sanitize_filename',
    'validate_filename',
]
