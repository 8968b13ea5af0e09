from classifieds.models.base import Base  # noqa: F401

from classifieds.models.identity import Identity, SessionToken  # noqa: F401
from classifieds.models.listing import Listing  # noqa: F401
from classifieds.models.favorites import FavoritesRecord  # noqa: F401
