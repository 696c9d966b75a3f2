from __future__ import annotations

import datetime
import random
import uuid
from pathlib import Path
from typing import Any, Callable

import jinja2
from faker import Faker

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_TEMPLATE_DIR = BASE_DIR / "default_templates"
TEMPLATE_SUFFIX = ".template"

# (length, weight) pairs for weightedSequence; short sequences dominate.
WEIGHTED_SEQUENCE_CHOICES: tuple[tuple[int, int], ...] = (
    (1, 20),
    (3, 15),
    (10, 8),
    (100, 5),
    (1000, 3),
    (10000, 1),
)


class TemplateLoadError(Exception):
    """Raised when the template directory cannot be loaded."""


class RenderError(Exception):
    """Raised when a loaded template fails to render."""


def build_template_functions(fake: Faker, rng: random.Random) -> dict[str, Callable[..., Any]]:
    lengths = [length for length, _ in WEIGHTED_SEQUENCE_CHOICES]
    weights = [weight for _, weight in WEIGHTED_SEQUENCE_CHOICES]

    def add(augend: int, addend: int) -> int:
        return augend + addend

    def date(fmt: str) -> str:
        return datetime.datetime.now().strftime(fmt)

    def seq(size: int) -> list[int]:
        return [0] * size

    def weighted_sequence() -> list[int]:
        return [0] * rng.choices(lengths, weights=weights, k=1)[0]

    def unique_id() -> str:
        return str(uuid.UUID(int=rng.getrandbits(128), version=4))

    def random_int(n: int) -> int:
        if n < 2:
            raise ValueError(f"randomInt needs an upper bound >= 2, got {n}")
        return rng.randint(1, n - 1)

    return {
        "add": add,
        "date": date,
        "seq": seq,
        "weightedSequence": weighted_sequence,
        "uuid": unique_id,
        "company": fake.company,
        "product": fake.catch_phrase,
        "city": fake.city,
        "state": fake.state,
        "street": fake.street_address,
        "zipCode": fake.zipcode,
        "randomInt": random_int,
        "description": fake.sentence,
    }


class TemplateRenderer:
    """Renders named document templates; owns its own Faker and RNG."""

    def __init__(self, environment: jinja2.Environment, names: list[str]) -> None:
        self._environment = environment
        self._names = list(names)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def render(self, name: str) -> str:
        try:
            template = self._environment.get_template(name)
            return template.render()
        except jinja2.TemplateError as exc:
            raise RenderError(f"failed to render template {name!r}: {exc}") from exc
        except (ValueError, TypeError) as exc:
            raise RenderError(f"template helper failed in {name!r}: {exc}") from exc


def load_templates(
    directory: str | Path = DEFAULT_TEMPLATE_DIR,
    seed: int | None = None,
    locale: str = "en_US",
) -> TemplateRenderer:
    """
    Compile every ``*.template`` file in ``directory``.

    All templates are parsed up front so that syntax errors surface before
    any load is generated.
    """
    path = Path(directory)
    if not path.is_dir():
        raise TemplateLoadError(f"template directory {str(path)!r} does not exist")

    names = sorted(p.name for p in path.glob(f"*{TEMPLATE_SUFFIX}") if p.is_file())
    if not names:
        raise TemplateLoadError(
            f"template directory {str(path)!r} contains no {TEMPLATE_SUFFIX} files"
        )

    fake = Faker(locale)
    rng = random.Random(seed)
    if seed is not None:
        fake.seed_instance(seed)

    environment = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(path)),
        undefined=jinja2.StrictUndefined,
        autoescape=False,
        keep_trailing_newline=False,
    )
    environment.globals.update(build_template_functions(fake, rng))

    for name in names:
        try:
            environment.get_template(name)
        except jinja2.TemplateError as exc:
            raise TemplateLoadError(f"failed to parse template {name!r}: {exc}") from exc

    return TemplateRenderer(environment, names)


__all__ = [
    "DEFAULT_TEMPLATE_DIR",
    "RenderError",
    "TemplateLoadError",
    "TemplateRenderer",
    "build_template_functions",
    "load_templates",
]
