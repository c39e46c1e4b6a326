"""トークナイズ結果のエンティティ番号を既存文脈に揃える。"""

from __future__ import annotations

import re
from collections.abc import Mapping

from dsm.domain.entities.candidate import TokenizerResult

ENTITY_NAME_PATTERN = re.compile(r"^(?P<type>.+)_(?P<index>[0-9]+)$")


def split_entity_name(name: str) -> tuple[str, int] | None:
    """NUMBER_0 のような名前を (型, 番号) に分解する。"""
    match = ENTITY_NAME_PATTERN.match(name)
    if match is None:
        return None
    return match.group("type"), int(match.group("index"))


def renumber_entities(
    tokenized: TokenizerResult,
    context_entities: Mapping[str, object],
) -> TokenizerResult:
    """文脈に同値のエンティティがあればその名前を再利用し、なければ次の空き番号を割り当てる。"""
    next_index_by_type: dict[str, int] = {}
    for name in context_entities:
        parsed = split_entity_name(name)
        if parsed is None:
            continue
        entity_type, index = parsed
        next_index_by_type[entity_type] = max(next_index_by_type.get(entity_type, 0), index + 1)

    renames: dict[str, str] = {}
    renumbered: dict[str, object] = {}
    for name, value in tokenized.entities.items():
        parsed = split_entity_name(name)
        if parsed is None:
            renames[name] = name
            renumbered[name] = value
            continue
        entity_type, _ = parsed

        existing_name = next(
            (
                candidate
                for candidate, candidate_value in context_entities.items()
                if candidate.startswith(f"{entity_type}_") and candidate_value == value
            ),
            None,
        )
        if existing_name is None:
            next_index = next_index_by_type.get(entity_type, 0)
            next_index_by_type[entity_type] = next_index + 1
            existing_name = f"{entity_type}_{next_index}"

        renames[name] = existing_name
        renumbered[existing_name] = value

    return TokenizerResult(
        tokens=tuple(renames.get(token, token) for token in tokenized.tokens),
        raw_tokens=tokenized.raw_tokens,
        entities=renumbered,
    )
