# src/tierflow/core/schema/naming.py
"""
Transformação de nomes entre o banco e o programa.

    underscore_compound_words  (banco)  ⇄  CamelCase  (programa)

Regras:
    - Ambas as direções rejeitam espaços em branco e dígito inicial
    - `to_camel_case` rejeita qualquer letra maiúscula na entrada
    - `from_camel_case` aceita apenas caracteres alfanuméricos

A transformação é reversível quando a entrada é bem formada
(sem separadores repetidos ou finais).
"""

import re

from tierflow.core.exceptions import InvalidNameError

_SEPARATOR_RE = re.compile(r"(^|[_\W]+)([a-zA-Z])")
_UPPER_RE = re.compile(r"([A-Z])")


def _check_common(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise InvalidNameError("name must be a non-empty string", details={"name": name})
    if re.search(r"\s", name):
        raise InvalidNameError("white space is not allowed", details={"name": name})
    if name[0].isdigit():
        raise InvalidNameError("string cannot begin with a digit", details={"name": name})


def to_camel_case(name: str) -> str:
    """
    Converte underscore_compound_words em CamelCase.

    Exemplos:
        to_camel_case('one')             -> 'One'
        to_camel_case('one_two_three')   -> 'OneTwoThree'
        to_camel_case('#$one_two,three') -> 'OneTwoThree'
        to_camel_case('One_Two')         -> InvalidNameError
        to_camel_case('5_two')           -> InvalidNameError
    """
    _check_common(name)
    if re.search(r"[A-Z]", name):
        raise InvalidNameError(
            "underscore_compound_words must not contain uppercase characters",
            details={"name": name},
        )
    return _SEPARATOR_RE.sub(lambda m: m.group(2).upper(), name)


def from_camel_case(name: str) -> str:
    """
    Converte CamelCase em underscore_compound_words.

    Exemplos:
        from_camel_case('oneTwoThree')   -> 'one_two_three'
        from_camel_case('OneTwoThree')   -> 'one_two_three'
        from_camel_case('ABC')           -> 'a_b_c'
        from_camel_case('one two')       -> InvalidNameError
    """
    _check_common(name)
    if not re.fullmatch(r"[a-zA-Z0-9]*", name):
        raise InvalidNameError(
            "from_camel_case string can only contain alphanumeric characters",
            details={"name": name},
        )
    converted = _UPPER_RE.sub(lambda m: "_" + m.group(1).lower(), name)
    return converted[1:] if converted.startswith("_") else converted
