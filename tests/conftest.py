from pathlib import Path

import numpy as np
import pandas as pd
import pytest

GENRE_POOL = ["Action", "Comedy", "Drama", "Romance", "Sci-Fi", "Slice of Life"]


def make_anime_df(n: int = 240, seed: int = 7, action_effect: float = 0.8) -> pd.DataFrame:
    """
    Synthetic anime table with a known structure: score rises with
    log(scored_by), Movies score higher, and Action adds action_effect.
    """
    rng = np.random.default_rng(seed)
    scored_by = rng.integers(10, 200_000, size=n)
    episodes = rng.integers(1, 60, size=n)
    types = rng.choice(["TV", "Movie", "OVA"], size=n, p=[0.6, 0.25, 0.15])
    sources = rng.choice(["Manga", "Original", "Light novel"], size=n)
    ratings = rng.choice(["PG-13 - Teens 13 or older", "R - 17+ (violence & profanity)"], size=n)
    studios = rng.choice(["Studio A", "Studio B", "Studio C"], size=n)

    genres = []
    has_action = np.zeros(n, dtype=bool)
    for i in range(n):
        k = int(rng.integers(1, 4))
        picked = list(rng.choice(GENRE_POOL, size=k, replace=False))
        has_action[i] = "Action" in picked
        genres.append(", ".join(picked))

    score = (
        4.0
        + 0.25 * np.log(scored_by)
        + 0.4 * (types == "Movie")
        + action_effect * has_action
        + rng.normal(0.0, 0.35, size=n)
    )
    score = np.clip(score, 1.0, 10.0)

    return pd.DataFrame(
        {
            "score": np.round(score, 2),
            "scored_by": scored_by,
            "episodes": episodes,
            "status": ["Finished Airing"] * n,
            "genre": genres,
            "type": types,
            "source": sources,
            "rating": ratings,
            "studio": studios,
        }
    )


@pytest.fixture
def anime_df() -> pd.DataFrame:
    return make_anime_df()


@pytest.fixture
def anime_csv(tmp_path: Path) -> Path:
    df = make_anime_df()
    # Raw MAL exports use capitalised headers and a few unusable rows
    df = df.rename(columns={"score": "Score", "scored_by": "Scored_By"})
    extra = pd.DataFrame(
        [
            {
                "Score": np.nan,
                "Scored_By": 0,
                "episodes": "Unknown",
                "status": "Not yet aired",
                "genre": "Action, Drama",
                "type": "TV",
                "source": "Original",
                "rating": "PG-13 - Teens 13 or older",
                "studio": "Studio A",
            },
            {
                "Score": 6.1,
                "Scored_By": 3,
                "episodes": 12,
                "status": "Finished Airing",
                "genre": "",
                "type": "TV",
                "source": "Manga",
                "rating": "PG-13 - Teens 13 or older",
                "studio": "Studio B",
            },
        ]
    )
    df = pd.concat([df, extra], ignore_index=True)
    path = tmp_path / "anime.csv"
    df.to_csv(path, index=False)
    return path
