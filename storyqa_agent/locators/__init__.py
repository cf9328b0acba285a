from .selector_synthesizer import (
    CREDENTIAL_FIELD_VOCABULARY,
    GENERIC_INPUT_SELECTORS,
    SelectorSynthesizer,
    escape_text,
    join_locators,
    split_locators,
)

__all__ = [
    "SelectorSynthesizer",
    "CREDENTIAL_FIELD_VOCABULARY",
    "GENERIC_INPUT_SELECTORS",
    "escape_text",
    "join_locators",
    "split_locators",
]
