#!/usr/bin/env python3
"""
MG Trako Demo Data Seeding Script
Populates the database with users for every role and a batch of must-go
requests, created and progressed through the normal request lifecycle so
the audit logs look like real usage.
"""
import random

import request_service
import store
from models import db, User, Trailer, RequestTrailer, MustGoRequest, PartDetail, PartInfo, RequestLog
from request_shapes import PARTS_PER_PALLET
from role_policy import Actor, Role, RequestStatus

DEFAULT_ADMIN = {"name": "Bob", "email": "bob@bob.bob", "password": "adminpass"}

ROLE_USERS = [
    {"name": "Casey Service", "email": "cs@example.com", "password": "cspass", "role": Role.CUSTOMER_SERVICE},
    {"name": "Wade House", "email": "warehouse@example.com", "password": "whpass", "role": Role.WAREHOUSE},
    {"name": "Rita Reports", "email": "reports@example.com", "password": "rrpass", "role": Role.REPORT_RUNNER},
    {"name": "Pat Pending", "email": "pending@example.com", "password": "pendingpass", "role": Role.PENDING},
]

PLANTS = ["FV58", "PL45", "WH23", "DK89"]
TRAILER_PREFIXES = ["SL", "ST", "B"]
ROUTES = [
    "Dock 4 - hot shot to Saginaw",
    "Team driver, deliver by 06:00",
    "Expedite via cross-dock 12",
    "Customer pickup at door 31",
]
NOTES = [
    "Lift gate required",
    "Call receiving before arrival",
    "Temperature sensitive - keep above 35F",
    "Priority level 1 shipment",
]


def clear_data():
    """Delete all rows, children first"""
    print("Clearing database...")
    for model in (RequestLog, PartDetail, RequestTrailer, MustGoRequest, Trailer, PartInfo, User):
        db.session.query(model).delete()
    db.session.commit()
    db.session.expunge_all()
    print("  ✓ Database cleared")


def seed_users():
    print("\nCreating users...")
    users = {}
    for entry in [dict(DEFAULT_ADMIN, role=Role.ADMIN)] + ROLE_USERS:
        user = store.find_user_by_email(entry["email"])
        if user:
            print(f"  ✓ {entry['email']} already exists")
        else:
            user = store.create_user(entry["name"], entry["email"], entry["password"], role=entry["role"])
            print(f"  ✓ Created {entry['email']} ({entry['role'].value})")
        users[Role(user.role)] = user
    return users


def generate_trailer_number():
    return f"{random.choice(TRAILER_PREFIXES)}{random.randint(10000, 99999)}"


def generate_payload():
    trailers = []
    trailer_numbers = {generate_trailer_number() for _ in range(random.randint(1, 3))}
    for trailer_number in sorted(trailer_numbers):
        trailers.append({
            "trailerNumber": trailer_number,
            "parts": [
                {
                    "partNumber": str(random.randint(10000, 999999)),
                    "quantity": random.randint(1, 10) * PARTS_PER_PALLET,
                }
                for _ in range(random.randint(1, 3))
            ],
        })
    return {
        "shipmentNumber": "".join(random.choices("ABCDEFGHJKLMNPQRSTUVWXYZ0123456789", k=10)),
        "plant": random.choice(PLANTS),
        "routeInfo": random.choice(ROUTES),
        "additionalNotes": random.choice(NOTES),
        "trailers": trailers,
    }


def seed_requests(users, count):
    print(f"\nCreating {count} must-go requests...")
    creator = Actor.from_user(users[Role.CUSTOMER_SERVICE])
    warehouse = Actor.from_user(users[Role.WAREHOUSE])

    created = []
    for _ in range(count):
        req = request_service.create_request(creator, generate_payload())
        target = random.choice(list(RequestStatus))
        if target != RequestStatus.PENDING:
            request_service.update_status(warehouse, req.id, status=RequestStatus.IN_PROGRESS.value,
                                          note=random.choice(NOTES))
        if target == RequestStatus.COMPLETED:
            request_service.update_status(warehouse, req.id, status=RequestStatus.COMPLETED.value)
        created.append(req)
    print(f"  ✓ Created {len(created)} requests")
    return created


def seed(count=5, clear=False):
    if clear:
        clear_data()
    users = seed_users()
    seed_requests(users, count)

    print("\nSeed completed successfully")
    print(f"\nDefault admin: {DEFAULT_ADMIN['email']} / {DEFAULT_ADMIN['password']}")
    for entry in ROLE_USERS:
        print(f"  {entry['role'].value}: {entry['email']} / {entry['password']}")


if __name__ == "__main__":
    from app import app

    with app.app_context():
        db.create_all()
        seed()
