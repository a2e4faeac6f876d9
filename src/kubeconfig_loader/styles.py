"""Styling for the interactive context picker."""

from questionary import Style

# Matches the cyan accents of the rich console theme
PROMPT_STYLE = Style(
    [
        ("qmark", "fg:#00afaf bold"),
        ("question", "bold"),
        ("answer", "fg:#00d7d7 bold"),
        ("pointer", "fg:#00d7d7 bold"),
        ("highlighted", "fg:#00d7d7 bold"),
        ("instruction", "fg:#6c6c6c italic"),
    ]
)

POINTER = "> "
QMARK = "? "
CURRENT_MARKER = " (current)"
