from __future__ import annotations

from pathlib import Path

from gateway_service.app.capabilities import PromptArgument, PromptDefinition
from gateway_service.app.utils import normalize_str_list, split_frontmatter
from libs.common.logging import get_logger

logger = get_logger("gateway_service.prompt_loader")


def parse_prompt_file(prompt_md_path: Path) -> PromptDefinition:
    """YAML 프론트매터가 붙은 Markdown 파일 하나를 프롬프트 정의로 바꿔요.

    프론트매터 키:
        title: 표시 제목이에요. 없으면 파일 이름으로 만들어요.
        description: 설명이에요. 없으면 본문 첫 줄을 써요.
        arguments: ``name`` / ``description`` / ``required`` 항목 목록이나 이름 문자열 목록이에요.
        required-permissions: 필요 권한 목록이에요. 콤마 구분 문자열도 받아요.
    """
    text = prompt_md_path.read_text(encoding="utf-8")
    frontmatter, markdown_body = split_frontmatter(text)

    raw_title = frontmatter.get("title")
    title = (
        raw_title.strip()
        if isinstance(raw_title, str) and raw_title.strip()
        else prompt_md_path.stem.replace("-", " ").replace("_", " ").title()
    )

    raw_description = frontmatter.get("description")
    description = (
        raw_description.strip()
        if isinstance(raw_description, str) and raw_description.strip()
        else _first_non_empty_line(markdown_body)
    )

    return PromptDefinition(
        title=title,
        description=description,
        body=markdown_body,
        arguments=_parse_arguments(frontmatter.get("arguments")),
        required_permissions=tuple(normalize_str_list(frontmatter.get("required-permissions"))),
        source_path=str(prompt_md_path),
    )


def discover_prompts(base_path: Path) -> list[PromptDefinition]:
    if not base_path.exists() or not base_path.is_dir():
        logger.warning("prompts_dir_missing", path=str(base_path))
        return []

    deduped: dict[str, PromptDefinition] = {}
    for prompt_md in sorted(base_path.glob("*.md")):
        prompt = parse_prompt_file(prompt_md)
        deduped[prompt.name] = prompt
    return list(deduped.values())


def _parse_arguments(value: object) -> tuple[PromptArgument, ...]:
    if not isinstance(value, list):
        return tuple(PromptArgument(name=name) for name in normalize_str_list(value))

    arguments: list[PromptArgument] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            arguments.append(PromptArgument(name=item.strip()))
        elif isinstance(item, dict) and isinstance(item.get("name"), str) and item["name"].strip():
            raw_description = item.get("description")
            arguments.append(
                PromptArgument(
                    name=item["name"].strip(),
                    description=raw_description.strip() if isinstance(raw_description, str) else "",
                    required=item.get("required") is True,
                )
            )
    return tuple(arguments)


def _first_non_empty_line(markdown_body: str) -> str:
    for line in markdown_body.splitlines():
        candidate = line.strip().lstrip("#").strip()
        if candidate:
            return candidate[:200]
    return "설명이 없어요."
