"""User documents with generated names, bios and credentials."""

from __future__ import annotations

import random
import secrets
import string
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

import bcrypt
from faker import Faker

from movielens_etl.data.id_mapper import IdMapper
from movielens_etl.deploy.ndjson_writer import PasswordLogWriter, write_ndjson

ABOUT_TEMPLATES = [
    "Fan of {} movies",
    "I really like {} films",
    "Passionate about {} cinema",
    "Love watching {} movies",
    "Enthusiast of {} genre",
    "Big fan of {}",
    "Enjoys {} and more",
    "{} movies are my favorite",
    "Always up for {} films",
    "Can't get enough of {}",
]

SIMPLE_ABOUTS = [
    "Movie lover",
    "Film enthusiast",
    "Cinema addict",
    "Just here for the popcorn",
    "Passionate about cinema",
    "Movie buff",
    "Film fanatic",
    "Love watching movies",
    "Always looking for good films",
    "Cinema is my passion",
]

PASSWORD_LENGTH = 10
MAX_PREFERRED_GENRES = 5


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Random numeric password from a cryptographic source."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def generate_username(first_name: str, last_name: str, user_id: int) -> str:
    """``first.last`` in lowercase with a numeric suffix from the userId."""
    return f"{first_name.lower()}.{last_name.lower()}{user_id % 10000}"


def select_random_genres(all_genres: list[str], rng: random.Random) -> list[str]:
    """Between one and five distinct genres, in random order."""
    if not all_genres:
        return []
    count = min(rng.randint(1, MAX_PREFERRED_GENRES), len(all_genres))
    return rng.sample(all_genres, count)


def generate_about(preferred_genres: list[str], rng: random.Random) -> str:
    """Short bio: 30% a stock phrase, otherwise built from the first two genres."""
    if rng.randrange(10) < 3 or not preferred_genres:
        return rng.choice(SIMPLE_ABOUTS)

    template = rng.choice(ABOUT_TEMPLATES)
    if len(preferred_genres) == 1:
        genre_text = preferred_genres[0]
    else:
        genre_text = f"{preferred_genres[0]} and {preferred_genres[1]}"
    return template.format(genre_text)


@dataclass
class UserRecord:
    user_id: int
    u_idx: int | None
    first_name: str
    last_name: str
    username: str
    email: str
    password: str
    password_hash: str
    about: str
    created_at: str
    preferred_genres: list[str] = field(default_factory=list)
    role: str = "user"

    def to_doc(self) -> dict:
        doc: dict = {"userId": self.user_id}
        if self.u_idx is not None:
            doc["uIdx"] = self.u_idx
        doc.update({
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "email": self.email,
            "passwordHash": self.password_hash,
            "role": self.role,
        })
        if self.about:
            doc["about"] = self.about
        if self.preferred_genres:
            doc["preferredGenres"] = self.preferred_genres
        doc["createdAt"] = self.created_at
        doc["updatedAt"] = self.created_at
        return doc

    def log_row(self) -> dict:
        return {
            "userId": self.user_id,
            "uIdx": self.u_idx,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "email": self.email,
            "password": self.password,
            "passwordHash": self.password_hash,
        }


class UserGenerator:
    """Creates a UserRecord per userId, registering it in the user IdMapper."""

    def __init__(
        self,
        user_mapper: IdMapper,
        all_genres: list[str],
        now: str,
        hash_passwords: bool = True,
        rng: random.Random | None = None,
        fake: Faker | None = None,
        hasher: Callable[[str], str] = hash_password,
    ):
        self.user_mapper = user_mapper
        self.all_genres = all_genres
        self.now = now
        self.hash_passwords = hash_passwords
        self.rng = rng or random.Random()
        self.fake = fake or Faker()
        self.hasher = hasher

    def generate(self, user_id: int) -> UserRecord:
        first_name = self.fake.first_name()
        last_name = self.fake.last_name()
        password = generate_password()
        preferred = select_random_genres(self.all_genres, self.rng)
        return UserRecord(
            user_id=user_id,
            u_idx=self.user_mapper.get_or_create(user_id),
            first_name=first_name,
            last_name=last_name,
            username=generate_username(first_name, last_name, user_id),
            email=f"user{user_id}@email.com",
            password=password,
            password_hash=self.hasher(password) if self.hash_passwords else password,
            about=generate_about(preferred, self.rng),
            preferred_genres=preferred,
            created_at=self.now,
        )


def build_users(
    user_ids: Iterable[int],
    users_out: Path | str,
    password_log_out: Path | str,
    generator: UserGenerator,
) -> int:
    """Write users.ndjson and the matching password log in one pass."""
    with PasswordLogWriter(password_log_out) as log:

        def _docs():
            for user_id in user_ids:
                record = generator.generate(user_id)
                log.write(record.log_row())
                yield record.to_doc()

        return write_ndjson(users_out, _docs())
