"""Business logic services for TieTrack."""

from tietrack.services.auth import AuthError, AuthService, InvalidCredentialsError
from tietrack.services.category import CategoryError, CategoryService
from tietrack.services.image import ImageError, ImageStore
from tietrack.services.inventory import InventoryService
from tietrack.services.live_query import LiveTieView, TieListSnapshot, TieQuery
from tietrack.services.tie import TieError, TieNotFoundError, TieService

__all__ = [
    "AuthError",
    "AuthService",
    "CategoryError",
    "CategoryService",
    "ImageError",
    "ImageStore",
    "InvalidCredentialsError",
    "InventoryService",
    "LiveTieView",
    "TieError",
    "TieListSnapshot",
    "TieNotFoundError",
    "TieQuery",
    "TieService",
]
