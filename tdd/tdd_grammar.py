"""
PEG grammar of the TDD language.

Items are separated by commas or line breaks. `#` starts a comment only
when nothing but whitespace precedes it on its line; `<#-- -->` comments
can appear wherever whitespace can. Unquoted words may contain `:` except
in hash-key position.
"""

from parsimonious.grammar import Grammar

TDD_GRAMMAR = r"""
single_text     = ws value ws eof
hash_text       = ws hash_items? ws eof
sequence_text   = ws sequence_items? ws eof

value           = hash / sequence / raw_string / quoted_string / call / word

hash            = "{" ws hash_items? ws "}"
hash_items      = hash_item (item_sep hash_item)* trailing_comma?
hash_item       = pair / hash_merge / key
pair            = key ws ":" ws value
hash_merge      = hash / call
key             = raw_string / quoted_string / key_word

sequence        = "[" ws sequence_items? ws "]"
sequence_items  = value (item_sep value)* trailing_comma?

call            = word ws "(" ws sequence_items? ws ")"

item_sep        = (ws "," ws) / (hs newline ws)
trailing_comma  = ws ","

quoted_string   = ~r'"(?:[^"\\]|\\[\s\S])*"' / ~r"'(?:[^'\\]|\\[\s\S])*'"
raw_string      = ~r'r"[^"]*"' / ~r"r'[^']*'"
word            = ~r"\+[^\s\ufeff\"'()+,;<=>\[\]{}]*|[^\s\ufeff\"'()+,;<=>\[\]{}]+"
key_word        = ~r"\+[^\s\ufeff\"'()+,:;<=>\[\]{}]*|[^\s\ufeff\"'()+,:;<=>\[\]{}]+"

ws              = ~r"(?:(?<![^\r\n])[^\S\r\n]*#[^\r\n]*|<#--[\s\S]*?-->|[\s\ufeff])*"
hs              = ~r"(?:<#--[\s\S]*?-->|[^\S\r\n]|\ufeff)*"
newline         = ~r"\r\n|\r|\n"
eof             = !~r"[\s\S]"
"""

grammar = Grammar(TDD_GRAMMAR)

# Entry rule of each parse mode
MODE_RULES = {
    "value": "single_text",
    "hash": "hash_text",
    "sequence": "sequence_text",
}
