"""Phone number fingerprinting."""

import hashlib


def generate_hash(value: str) -> str:
    """Return the SHA-256 digest of value as 64 lowercase hex characters.
    
    Lone surrogates (which JSON payloads can carry) are encoded with
    surrogatepass so that every str has a digest.
    """
    return hashlib.sha256(value.encode('utf-8', 'surrogatepass')).hexdigest()
