"""JSON file persistence shared by every monitor and the API."""

from .json_store import JsonStore, PersistError, generate_hash, generate_id, utc_now_iso
from .provenance import ProvenanceLog
from .validation import ValidationError, validate_payload
