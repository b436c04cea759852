"""
Example 01: Nested Result Maps

This example demonstrates building a one-to-many object graph from a single
joined query with row_graph's result maps and the MappingEngine.
"""

from dataclasses import dataclass, field
import sqlite3

from row_graph import DefaultResultHandler, MappingEngine, MappingRegistry, Statement, result_map


@dataclass
class Order:
    """Order entity"""
    id: int
    total: float
    status: str


@dataclass
class User:
    """User with orders collection"""
    id: int
    name: str
    email: str
    orders: list[Order] = field(default_factory=list)


def main():
    conn = sqlite3.connect(":memory:")
    conn.executescript("""
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT NOT NULL);
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            total REAL NOT NULL,
            status TEXT NOT NULL
        );
        INSERT INTO users (name, email) VALUES ('Alice', 'alice@example.com');
        INSERT INTO users (name, email) VALUES ('Bob', 'bob@example.com');
        INSERT INTO orders (user_id, total, status) VALUES (1, 100.50, 'completed');
        INSERT INTO orders (user_id, total, status) VALUES (1, 50.25, 'pending');
        INSERT INTO orders (user_id, total, status) VALUES (2, 200.00, 'completed');
    """)

    # Describe how rows become objects
    order_map = result_map("order", Order).id("id").result("total").result("status").build()
    user_map = (
        result_map("user", User)
        .id("id")
        .result("name")
        .result("email")
        .collection("orders", "order", column_prefix="order_")
        .build()
    )
    statement = Statement(id="user.with_orders", result_maps=("user",), result_ordered=True)
    registry = MappingRegistry([order_map, user_map], [statement])

    print("=== Nested Result Maps ===\n")

    cursor = conn.execute("""
        SELECT u.id, u.name, u.email,
               o.id AS order_id, o.total AS order_total, o.status AS order_status
        FROM users u
        LEFT JOIN orders o ON u.id = o.user_id
        ORDER BY u.id, o.id
    """)
    handler = DefaultResultHandler()
    MappingEngine(registry, statement=statement).materialize(cursor, user_map, None, handler)

    print(f"Reconstructed {len(handler.result_list)} users:\n")
    for user in handler.result_list:
        print(f"User: {user.name} ({user.email})")
        print(f"  Orders ({len(user.orders)}):")
        for order in user.orders:
            print(f"    - Order #{order.id}: ${order.total:.2f} ({order.status})")
        print()

    conn.close()


if __name__ == "__main__":
    main()
