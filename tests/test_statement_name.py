import hashlib
import re

from typed_sql.sql import STATEMENT_NAME_HASH_LEN, STATEMENT_NAME_PREFIX_LEN, statement_name


def test_same_text_same_name():
    text = "SELECT * FROM runs WHERE id = $1"
    first = statement_name(text)
    assert statement_name(text) == first
    assert statement_name(text) is first


def test_name_is_identifier_safe_and_short():
    name = statement_name("SELECT \"x\", y->>'z' FROM foo WHERE a IN ($1, $2) -- émoji ✓\n" * 5)
    assert re.fullmatch(r"[A-Za-z0-9_]+", name)
    assert len(name) == STATEMENT_NAME_PREFIX_LEN + 1 + STATEMENT_NAME_HASH_LEN


def test_name_shape():
    text = "SELECT $1 + $2"
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:STATEMENT_NAME_HASH_LEN]
    assert statement_name(text) == f"SELECT__1____2_{digest}"


def test_shared_prefix_still_differs():
    prefix = "SELECT " + "x" * 80
    assert statement_name(prefix + " a") != statement_name(prefix + " b")
