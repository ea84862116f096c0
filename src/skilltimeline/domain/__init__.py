"""Pure domain logic for the unified activity timeline."""
