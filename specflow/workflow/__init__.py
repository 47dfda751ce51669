"""Phase definitions, state machine and engine."""
