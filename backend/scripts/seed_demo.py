"""Seed a demo account with one study plan and one item of each kind.

Usage: python scripts/seed_demo.py [--email EMAIL] [--password PASSWORD]

The script is idempotent for the account: if the email already exists
its password is checked and a new plan is added. A bearer token for the
account is printed at the end.
"""

import argparse
import pathlib
import sys
from datetime import datetime, timedelta

# Ensure `backend/` is on sys.path so `study_planner` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlmodel import Session  # noqa: E402

from study_planner import services  # noqa: E402
from study_planner.database import create_db_and_tables, engine  # noqa: E402


def seed(email: str, password: str) -> str:
    create_db_and_tables()
    with Session(engine) as session:
        auth = services.AuthService(session)
        result = auth.authenticate(email, password)
        if result is None:
            auth.register(email, password, 'Demo Student')
            result = auth.authenticate(email, password)
        user, token = result
        start = datetime.now().replace(hour=9, minute=0, second=0, microsecond=0)
        plan = services.StudyPlanService(session).create(user.id, {
            'title': 'Exam revision',
            'description': 'Four weeks of mixed revision',
            'startDate': start.isoformat(),
            'endDate': (start + timedelta(weeks=4)).isoformat(),
        })
        services.StudyMaterialService(session).create(user.id, plan.id, {
            'title': 'Course notes', 'type': 'document', 'priority': 'high',
        })
        services.StudySessionService(session).create(user.id, plan.id, {
            'title': 'First session',
            'startTime': (start + timedelta(days=1)).isoformat(),
            'endTime': (start + timedelta(days=1, hours=1)).isoformat(),
            'duration': 60,
        })
        services.StudyRecommendationService(session).create(user.id, plan.id, {
            'content': 'Review yesterday\'s notes for ten minutes before each session.',
            'type': 'technique',
        })
        print('Seeded plan', plan.id, 'for', user.email)
        return token


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Seed a demo study plan")
    parser.add_argument("--email", default="demo@example.com")
    parser.add_argument("--password", default="demo-pass")
    args = parser.parse_args()
    print("TOKEN:", seed(args.email, args.password))
