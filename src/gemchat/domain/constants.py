"""Fixed conversation policy values."""

DEFAULT_TITLE = "Nueva conversación"
MAX_TITLE_LENGTH = 50

SUMMARY_THRESHOLD = 10
SUMMARY_PREFIX = "Resumen de conversación anterior: "
SUMMARY_USER_TURNS = 3
SUMMARY_TAIL_TURNS = 2
SUMMARY_SNIPPET_LENGTH = 100
SUMMARY_ELLIPSIS = "..."

USER_LABEL = "Usuario"
ASSISTANT_LABEL = "Asistente"
