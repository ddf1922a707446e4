import pandas as pd
import pytest

from anime_eda.errors import SchemaError
from anime_eda.preprocess import expand_genres, split_genres


def _three_records() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "name": ["a", "b", "c"],
            "genre": ["Comedy, Action", "Drama", ""],
        }
    )


def test_three_record_scenario():
    df = _three_records()
    out = expand_genres(df)
    assert out.genres == ("Comedy", "Action", "Drama")
    rows = out.table[list(out.columns)].astype(int).values.tolist()
    assert rows == [[1, 1, 0], [0, 0, 1], [0, 0, 0]]
    assert out.counts.to_dict() == {"Comedy": 1, "Action": 1, "Drama": 1}


def test_original_columns_kept_and_input_not_mutated():
    df = _three_records()
    before = df.copy()
    out = expand_genres(df)
    pd.testing.assert_frame_equal(df, before)
    assert list(out.table.columns[:2]) == ["name", "genre"]
    assert len(out.table) == len(df)


def test_every_row_has_every_genre_column():
    df = pd.DataFrame({"genre": ["Action", "", None, "Drama, Action, Romance"]})
    out = expand_genres(df)
    sub = out.table[list(out.columns)]
    assert sub.shape == (4, 3)
    assert sub.notna().all().all()
    assert sub.dtypes.map(lambda t: t == bool).all()
    # records without a genre are all-False
    assert not sub.iloc[1].any()
    assert not sub.iloc[2].any()


def test_expansion_is_deterministic():
    df = pd.DataFrame({"genre": ["Sci-Fi, Mecha", "Mecha, Drama", "Drama"]})
    a = expand_genres(df)
    b = expand_genres(df)
    assert a.columns == b.columns
    pd.testing.assert_frame_equal(a.table, b.table)


def test_prefix_and_column_for():
    out = expand_genres(_three_records(), prefix="genre_")
    assert out.columns == ("genre_Comedy", "genre_Action", "genre_Drama")
    assert out.column_for("Action") == "genre_Action"


def test_whitespace_and_empty_tokens_ignored():
    assert split_genres("Action, , Comedy, ") == ["Action", "Comedy"]
    assert split_genres(float("nan")) == []


def test_collision_with_existing_column_raises():
    df = pd.DataFrame({"genre": ["Action"], "Action": [1]})
    with pytest.raises(SchemaError):
        expand_genres(df)


def test_missing_genre_column_raises():
    with pytest.raises(SchemaError):
        expand_genres(pd.DataFrame({"score": [1.0]}))
