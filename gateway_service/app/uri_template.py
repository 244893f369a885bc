"""``{name}`` 슬롯만 지원하는 단순 URI 템플릿이에요 (RFC 6570 level 1)."""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

_VARIABLE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
# 디코딩한 값이 경로를 벗어나게 만드는 조각이에요
_UNSAFE_FRAGMENTS = ("/", "?", "#", "\\", "..")


class UriTemplate:
    def __init__(self, template: str) -> None:
        self.template = template
        self.variables: list[str] = _VARIABLE.findall(template)
        if len(set(self.variables)) != len(self.variables):
            raise ValueError(f"URI 템플릿에 같은 변수가 두 번 나와요: {template}")
        self._pattern = self._compile(template)

    @staticmethod
    def _compile(template: str) -> re.Pattern[str]:
        parts: list[str] = []
        cursor = 0
        for match in _VARIABLE.finditer(template):
            parts.append(re.escape(template[cursor : match.start()]))
            parts.append(f"(?P<{match.group(1)}>[^/?#]+)")
            cursor = match.end()
        parts.append(re.escape(template[cursor:]))
        return re.compile("^" + "".join(parts) + "$")

    def match(self, uri: str) -> dict[str, str] | None:
        """URI에서 변수 값을 디코딩해서 꺼내요.

        디코딩한 값에 ``/``, ``?``, ``#``, ``..`` 같은 조각이 있으면 매칭하지 않은 것으로 봐요.
        """
        matched = self._pattern.match(uri)
        if matched is None:
            return None
        values = {name: unquote(value) for name, value in matched.groupdict().items()}
        if any(fragment in value for value in values.values() for fragment in _UNSAFE_FRAGMENTS):
            return None
        return values

    def expand(self, values: dict[str, str]) -> str:
        def _replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in values:
                raise KeyError(name)
            return quote(str(values[name]), safe="")

        return _VARIABLE.sub(_replace, self.template)

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"
