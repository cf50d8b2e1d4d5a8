#!/usr/bin/env python3
"""Seed the database with a demo graduating batch ready for issuance.

Usage:
    python -m scripts.seed_demo_batch
    # or from project root:
    python scripts/seed_demo_batch.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from certledger.common.config import get_settings
from certledger.common.database import DatabaseManager
from certledger.issuance.schemas import BatchSubmission
from certledger.issuance.store import CertificateStore

DEMO_BATCH_ID = "batch_demo_2025"

DEMO_STUDENTS = [
    ("ST00001", "Amaya", "Perera", "BSc (Hons) Software Engineering", 3.72),
    ("ST00002", "Kasun", "Silva", "BSc (Hons) Software Engineering", 3.15),
    ("ST00003", "Nethmi", "Fernando", "BSc (Hons) Computer Science", 3.88),
    ("ST00004", "Ravindu", "Jayasinghe", "BSc (Hons) Computer Science", 2.94),
    ("ST00005", "Dilini", "Wickramasinghe", "BSc (Hons) Cyber Security", 3.41),
]


async def seed_demo_batch() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    store = CertificateStore()
    submission = BatchSubmission(
        batch_id=DEMO_BATCH_ID,
        submitted_by="seed-script",
        metadata={
            "batch_name": "Computing Summer 2025",
            "academic_year": "2024/2025",
            "semester": "Semester 2",
            "faculty": "Technology",
            "contact_person": "Registry Office",
            "contact_email": "registry@example.ac.uk",
        },
        students=[
            {
                "student_id": sid,
                "first_name": first,
                "last_name": last,
                "email": f"{first.lower()}.{last.lower()}@example.ac.uk",
                "course": course,
                "graduation_date": "2025-07-15",
                "gpa": gpa,
            }
            for sid, first, last, course, gpa in DEMO_STUDENTS
        ],
    )

    async with db.get_session() as session:
        if await store.get_batch(session, DEMO_BATCH_ID):
            print(f"  [skip] {DEMO_BATCH_ID} already exists")
        else:
            await store.create_batch(
                session, submission, default_university=settings.default_university,
            )
            print(f"  [created] {DEMO_BATCH_ID} ({len(DEMO_STUDENTS)} students)")

    await db.close()
    print(f"\nDone. Issue it with POST {settings.api_prefix}/batches/{DEMO_BATCH_ID}/issue")


if __name__ == "__main__":
    asyncio.run(seed_demo_batch())
