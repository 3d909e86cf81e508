"""Internal constants shared across the library."""

USER_AGENT = "geodispatch/1 (+aiohttp)"

#: Geohash alphabet: digits and lowercase letters without ``a``, ``i``, ``l``, ``o``.
BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BASE32_INDEX: dict[str, int] = {symbol: index for index, symbol in enumerate(BASE32)}

DEFAULT_PRECISION = 6

#: Longest geohash accepted from callers; 12 symbols already resolve to a few centimetres.
MAX_PRECISION = 12

#: Firestore rejects ``IN`` filters with more values than this.
FIRESTORE_IN_LIMIT = 10

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
DATASTORE_SCOPE = "https://www.googleapis.com/auth/datastore"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ONESIGNAL_API_URL = "https://onesignal.com/api/v1/notifications"

MISSING_FIELDS_MESSAGE = "Missing required fields"
INVALID_LOCATION_MESSAGE = "Invalid location"
INVALID_BODY_MESSAGE = "Invalid request body"
