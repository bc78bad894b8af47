"""
Phonetic and normalization helpers shared by match-key storage and scoring
"""

from typing import Optional


_CODES = {}
for _letters, _digit in (('BFPV', '1'), ('CGJKQSXZ', '2'), ('DT', '3'), ('L', '4'), ('MN', '5'), ('R', '6')):
    _CODES.update(dict.fromkeys(_letters, _digit))

# H and W do not separate letters sharing a code, vowels do
_TRANSPARENT = 'HW'


def soundex(word: Optional[str]) -> str:
    """American Soundex code of a name, '' when it has no letters"""
    letters = [ch for ch in (word or '').upper() if ch.isalpha()]
    if not letters:
        return ''

    code = letters[0]
    previous = _CODES.get(letters[0], '')
    for ch in letters[1:]:
        digit = _CODES.get(ch, '')
        if digit and digit != previous:
            code += digit
            if len(code) == 4:
                break
        if ch not in _TRANSPARENT:
            previous = digit

    return code.ljust(4, '0')


def normalize_name(name: Optional[str]) -> str:
    """Lowercase and collapse whitespace for exact comparisons"""
    if not name:
        return ''
    return ' '.join(name.lower().split())
