import time
import aiosqlite

DEFAULT_FAQS = [
    (
        "What is a NIP-05 identifier?",
        "A human-readable name like alice@example.com that Nostr clients resolve to your public key.",
        "general",
        1,
    ),
    (
        "Which key format should I register?",
        "Paste your npub or the 64-character hex key; npub keys are converted to hex before saving.",
        "registration",
        1,
    ),
    (
        "Can I change my username later?",
        "Yes. Log in with your Nostr extension and edit your profile, as long as the new name is free.",
        "registration",
        2,
    ),
    (
        "How do zaps work?",
        "Add a Lightning Address to your profile. Senders get an invoice from your wallet provider.",
        "lightning",
        1,
    ),
]


async def upgrade(db: aiosqlite.Connection) -> None:
    from db.migrations.manager import table_exists

    if not await table_exists(db, "support_tickets"):
        await db.execute("""
            CREATE TABLE support_tickets (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                public_key  TEXT    NOT NULL,
                subject     TEXT    NOT NULL,
                message     TEXT    NOT NULL,
                status      TEXT    NOT NULL DEFAULT 'open'
                            CHECK (status IN ('open', 'in_progress', 'resolved')),
                created_at  INTEGER NOT NULL,
                updated_at  INTEGER NOT NULL
            )
        """)
        await db.execute(
            "CREATE INDEX idx_support_tickets_public_key ON support_tickets(public_key, created_at)"
        )

    if not await table_exists(db, "faqs"):
        await db.execute("""
            CREATE TABLE faqs (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                question    TEXT    NOT NULL,
                answer      TEXT    NOT NULL,
                category    TEXT    NOT NULL,
                sort_order  INTEGER NOT NULL DEFAULT 0,
                created_at  INTEGER NOT NULL
            )
        """)
        now = int(time.time())
        await db.executemany(
            "INSERT INTO faqs (question, answer, category, sort_order, created_at) VALUES (?, ?, ?, ?, ?)",
            [(*faq, now) for faq in DEFAULT_FAQS],
        )
