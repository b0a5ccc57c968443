"""Bulk update result."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UpdateResult:
    """一括更新の結果

    Attributes:
        matched: 条件に一致したレコード数
        modified: 実際に変更されたレコード数
    """

    matched: int = 0
    modified: int = 0
