import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path


def init_schema_and_data(db_path: Path) -> None:
    """Create marketplace tables if needed and insert demo data when empty."""
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    try:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
              key TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              name_ka TEXT NOT NULL,
              icon TEXT NULL,
              keywords TEXT NOT NULL DEFAULT '[]',
              sort_order INTEGER NOT NULL DEFAULT 0,
              is_active INTEGER NOT NULL DEFAULT 1,
              subcategories TEXT NOT NULL DEFAULT '[]'
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS pros (
              id TEXT PRIMARY KEY,
              uid INTEGER NOT NULL UNIQUE,
              name TEXT NOT NULL,
              avatar TEXT NULL,
              title TEXT NULL,
              verification_status TEXT NOT NULL DEFAULT 'pending',
              is_premium INTEGER NOT NULL DEFAULT 0,
              avg_rating REAL NOT NULL DEFAULT 0,
              total_reviews INTEGER NOT NULL DEFAULT 0,
              categories TEXT NOT NULL DEFAULT '[]',
              subcategories TEXT NOT NULL DEFAULT '[]',
              base_price REAL NULL,
              max_price REAL NULL,
              pricing_model TEXT NULL,
              currency TEXT NOT NULL DEFAULT 'GEL',
              portfolio_count INTEGER NOT NULL DEFAULT 0,
              completed_jobs INTEGER NOT NULL DEFAULT 0,
              external_completed_jobs INTEGER NOT NULL DEFAULT 0,
              is_available INTEGER NOT NULL DEFAULT 1,
              is_deactivated INTEGER NOT NULL DEFAULT 0,
              created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS reviews (
              id TEXT PRIMARY KEY,
              pro_id TEXT NOT NULL,
              rating REAL NOT NULL,
              text TEXT NULL,
              client_name TEXT NULL,
              is_anonymous INTEGER NOT NULL DEFAULT 0,
              is_verified INTEGER NOT NULL DEFAULT 0,
              source TEXT NOT NULL DEFAULT 'homico',
              project_title TEXT NULL,
              created_at TEXT NOT NULL
            )
            """
        )

        cur.execute("SELECT COUNT(*) AS c FROM categories")
        row = cur.fetchone()
        count = row[0] if row else 0
        if count == 0:
            _insert_mock_data(cur)
        conn.commit()
    finally:
        cur.close()
        conn.close()


def _sub(key: str, name: str, name_ka: str, sort_order: int, keywords=(), children=()) -> dict:
    return {
        "key": key,
        "name": name,
        "name_ka": name_ka,
        "icon": key,
        "keywords": list(keywords),
        "sort_order": sort_order,
        "is_active": True,
        "children": [
            {"key": k, "name": n, "name_ka": nk, "icon": k, "keywords": [], "sort_order": i, "is_active": True}
            for i, (k, n, nk) in enumerate(children)
        ],
    }


def _insert_mock_data(cur) -> None:
    """Insert a small category tree, professionals and reviews."""
    categories = [
        (
            "renovation",
            "Renovation",
            "რემონტი",
            ["repair", "remont", "ремонт"],
            0,
            [
                _sub("plumbing", "Plumbing", "სანტექნიკა", 0, ["plumber", "pipes", "сантехника"]),
                _sub("electricity", "Electricity", "ელექტროობა", 1, ["electrical", "wiring", "электрика"]),
                _sub("mural", "Mural", "მალიარი", 2, ["painting", "painter", "покраска"]),
                _sub("roofing", "Roofing", "სახურავი", 3, ["roof", "кровля"]),
                _sub(
                    "tile",
                    "Tile",
                    "ჭერი",
                    4,
                    ["ceiling", "потолок"],
                    [("stretch-ceiling", "Stretch Ceiling", "გასაჭიმი ჭერი"), ("drywall", "Drywall", "გიფსოკარდონი")],
                ),
                _sub(
                    "flooring",
                    "Flooring",
                    "იატაკი",
                    5,
                    ["floor", "полы"],
                    [("parquet", "Parquet", "პარკეტი"), ("laminate", "Laminate", "ლამინატი"), ("wood", "Wood", "ხე")],
                ),
                _sub("plastering", "Plastering", "მლესავი", 6, ["plaster", "штукатурка"]),
                _sub("hvac", "Heating/Cooling", "გათბობა/გაგრილება", 7, ["heating", "air conditioning"]),
            ],
        ),
        (
            "design",
            "Design",
            "დიზაინი",
            ["designer", "дизайн"],
            1,
            [
                _sub("interior", "Interior Design", "ინტერიერი", 0, ["interior design", "интерьер"]),
                _sub("exterior", "Exterior Design", "ექსტერიერი", 1),
                _sub("3d-design", "3D Design", "3D დიზაინი", 2, ["3d", "visualization"]),
            ],
        ),
        (
            "architecture",
            "Architecture",
            "არქიტექტურა",
            ["architect", "архитектура"],
            2,
            [
                _sub("residential-architecture", "Residential", "საცხოვრებელი", 0),
                _sub("commercial-architecture", "Commercial", "კომერციული", 1),
                _sub("reconstruction", "Reconstruction", "რეკონსტრუქცია", 2),
            ],
        ),
        (
            "services",
            "Services",
            "სერვისები",
            ["service", "услуги"],
            3,
            [
                _sub(
                    "cleaning",
                    "Cleaning",
                    "დალაგება",
                    0,
                    ["cleaner", "уборка"],
                    [
                        ("deep-cleaning", "Deep Cleaning", "გენერალური დალაგება"),
                        ("after-renovation", "After Renovation", "რემონტის შემდგომი"),
                    ],
                ),
                _sub("moving", "Moving", "გადაზიდვა", 1, ["movers", "переезд"]),
                _sub("gardening", "Gardening", "მებაღეობა", 2, ["garden", "сад"]),
                _sub("appliance-repair", "Appliance Repair", "ტექნიკის შეკეთება", 3),
            ],
        ),
    ]
    cur.executemany(
        """
        INSERT INTO categories (key, name, name_ka, icon, keywords, sort_order, is_active, subcategories)
        VALUES (?, ?, ?, ?, ?, ?, 1, ?)
        """,
        [
            (key, name, name_ka, key, json.dumps(keywords, ensure_ascii=False), order, json.dumps(subs, ensure_ascii=False))
            for key, name, name_ka, keywords, order, subs in categories
        ],
    )

    now = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    # id, uid, name, title, verification, premium, rating, reviews, categories, subcategories,
    # base, max, pricing model, portfolio, completed, external completed, available, deactivated, day
    pros = [
        ("pro_001", 101, "Giorgi Beridze", "Master Plumber", "verified", 1, 4.8, 32,
         ["renovation"], ["plumbing"], 80, 300, "range", 14, 51, 10, 1, 0, 2),
        ("pro_002", 102, "Levan Kapanadze", "Plumbing & Heating", "verified", 0, 4.5, 18,
         ["renovation"], ["plumbing", "hvac"], 60, 200, "range", 6, 22, 0, 1, 0, 5),
        ("pro_003", 103, "Nino Tsiklauri", "Plumber", "pending", 0, 4.2, 9,
         ["renovation"], ["plumbing"], 100, None, "fixed", 3, 11, 2, 1, 0, 9),
        ("pro_004", 104, "Dato Lomidze", "Handyman", "pending", 0, 3.6, 4,
         ["renovation"], ["plumbing", "plastering"], 50, 120, "hourly", 1, 5, 0, 1, 0, 12),
        ("pro_005", 105, "Irakli Gelashvili", "Licensed Electrician", "verified", 1, 4.9, 41,
         ["renovation"], ["electricity"], 150, 600, "range", 20, 80, 15, 1, 0, 1),
        ("pro_006", 106, "Tamar Javakhishvili", "Electrician", "verified", 0, 4.0, 7,
         ["renovation"], ["electricity"], 120, None, "fixed", 2, 9, 0, 1, 0, 15),
        ("pro_007", 107, "Sandro Kvaratskhelia", "Wall Painter", "pending", 0, 4.4, 12,
         ["renovation"], ["mural"], None, None, "byAgreement", 8, 30, 0, 1, 0, 7),
        ("pro_008", 108, "Mariam Abashidze", "Decorative Painting", "verified", 0, 4.1, 5,
         ["renovation"], ["mural"], None, None, None, 4, 8, 0, 1, 0, 20),
        ("pro_009", 109, "Ana Chikovani", "Interior Designer", "verified", 1, 4.7, 26,
         ["design"], ["interior", "3d-design"], 1500, 6000, "range", 35, 40, 5, 1, 0, 3),
        ("pro_010", 110, "Luka Mamaladze", "Interior & 3D Visualization", "pending", 0, 4.3, 11,
         ["design"], ["interior"], 800, 3000, "range", 12, 15, 0, 1, 0, 10),
        ("pro_011", 111, "Ketevan Dolidze", "Architect", "verified", 0, 4.6, 14,
         ["architecture"], ["residential-architecture", "reconstruction"], 2000, 9000, "range", 18, 21, 4, 1, 0, 6),
        ("pro_012", 112, "Vakhtang Nozadze", "Parquet Specialist", "verified", 0, 4.4, 16,
         ["renovation"], ["flooring", "parquet", "laminate"], 25, 60, "per_sqm", 9, 33, 0, 1, 0, 8),
        ("pro_013", 113, "Zurab Tsereteli", "Plumber", "verified", 0, 5.0, 3,
         ["renovation"], ["plumbing"], 70, 150, "range", 0, 3, 0, 1, 1, 25),
    ]
    cur.executemany(
        """
        INSERT INTO pros
          (id, uid, name, avatar, title, verification_status, is_premium, avg_rating, total_reviews,
           categories, subcategories, base_price, max_price, pricing_model, currency,
           portfolio_count, completed_jobs, external_completed_jobs, is_available, is_deactivated, created_at)
        VALUES (?, ?, ?, NULL, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'GEL', ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                pid, uid, name, title, verification, premium, rating, reviews,
                json.dumps(cats), json.dumps(subs), base, top, model,
                portfolio, completed, external, available, deactivated,
                now.replace(day=day).isoformat(),
            )
            for (pid, uid, name, title, verification, premium, rating, reviews, cats, subs,
                 base, top, model, portfolio, completed, external, available, deactivated, day) in pros
        ],
    )

    reviews = [
        ("rev_001", "pro_001", 5, "Fixed a leaking riser in one visit. Very tidy.", "Eka M.", 0, 1, "homico",
         "Bathroom pipe replacement", 10),
        ("rev_002", "pro_001", 5, "Arrived on time and explained everything.", None, 1, 1, "homico", None, 14),
        ("rev_003", "pro_001", 4, "Good work, slightly over the initial estimate.", "Nika G.", 0, 0, "external",
         "Kitchen sink", 18),
        ("rev_004", "pro_005", 5, "Rewired the whole apartment to code.", "Salome K.", 0, 1, "homico",
         "Full rewiring", 11),
        ("rev_005", "pro_005", 4, "Professional, but scheduling took a while.", "Beka T.", 0, 1, "homico", None, 21),
        ("rev_006", "pro_009", 5, "Beautiful design and great 3D renders.", "Lika S.", 0, 1, "homico",
         "Two-bedroom apartment", 16),
    ]
    cur.executemany(
        """
        INSERT INTO reviews
          (id, pro_id, rating, text, client_name, is_anonymous, is_verified, source, project_title, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (rid, pro_id, rating, text, client, anonymous, verified, source, project, now.replace(day=day).isoformat())
            for rid, pro_id, rating, text, client, anonymous, verified, source, project, day in reviews
        ],
    )
