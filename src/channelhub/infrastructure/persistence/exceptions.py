"""Store-level exceptions raised by the SQLite repositories."""


class PersistenceError(Exception):
    """永続化層の基底例外"""


class DatabaseError(PersistenceError):
    """channels / identities テーブルの読み書きに失敗した場合の例外

    元の SQLAlchemy 例外は __cause__ に保持される。
    """
