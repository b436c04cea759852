"""
Example 02: Nested Queries and Lazy Loading

This example demonstrates resolving associations with nested queries through
the Executor, including a cyclic author/posts graph and lazily loaded values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import sqlite3

from row_graph import (
    DBAPIStatementRunner,
    Executor,
    Lazy,
    MappingRegistry,
    Settings,
    Statement,
    result_map,
)


@dataclass
class Author:
    id: int
    name: str
    posts: list[Post] = field(default_factory=list)


@dataclass
class Post:
    id: int
    title: str
    author: Author | Lazy[Author] | None = None


SQL = {
    "author.by_id": "SELECT id, name FROM authors WHERE id = ?",
    "post.by_author": "SELECT id, title, author_id FROM posts WHERE author_id = ? ORDER BY id",
    "post.all": "SELECT id, title, author_id FROM posts ORDER BY id",
}


def build_registry() -> MappingRegistry:
    author = (
        result_map("author", Author)
        .id("id")
        .result("name")
        .nested_query("posts", "post.by_author", "id")
        .build()
    )
    post = (
        result_map("post", Post)
        .id("id")
        .result("title")
        .nested_query("author", "author.by_id", "author_id")
        .build()
    )
    return MappingRegistry(
        [author, post],
        [
            Statement(id="author.by_id", result_maps=("author",), parameter_type=int),
            Statement(id="post.by_author", result_maps=("post",), parameter_type=int),
            Statement(id="post.all", result_maps=("post",)),
        ],
    )


def main():
    conn = sqlite3.connect(":memory:")
    conn.executescript("""
        CREATE TABLE authors (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
        CREATE TABLE posts (id INTEGER PRIMARY KEY, author_id INTEGER, title TEXT NOT NULL);
        INSERT INTO authors VALUES (1, 'Alice');
        INSERT INTO posts VALUES (1, 1, 'Hello'), (2, 1, 'Again');
    """)
    registry = build_registry()

    print("=== Cyclic graph ===\n")
    executor = Executor(registry, DBAPIStatementRunner(conn, SQL))
    [author] = executor.query("author.by_id", 1)
    print(f"{author.name} wrote {[post.title for post in author.posts]}")
    print(f"Back reference resolved: {author.posts[0].author is author}\n")

    print("=== Lazy loading ===\n")
    executor = Executor(
        registry,
        DBAPIStatementRunner(conn, SQL),
        settings=Settings(lazy_loading_enabled=True),
    )
    posts = executor.query("post.all")
    for post in posts:
        print(f"Post '{post.title}': author loaded? {post.author.loaded}")
    print(f"First author: {posts[0].author.get().name}")

    conn.close()


if __name__ == "__main__":
    main()
