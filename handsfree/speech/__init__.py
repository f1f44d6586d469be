"""Speaker identity: voice-print enrollment and matching, speaker tracking, role routing."""
