"""Customer support chat backend with deterministic conversation memory."""
