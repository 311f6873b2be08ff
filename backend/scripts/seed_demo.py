"""CLI script to seed a demo account with sample subjects and topics.
Usage: python scripts/seed_demo.py [--email EMAIL] [--password PASSWORD]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `studytrack` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studytrack.database import engine, create_db_and_tables
from studytrack import repositories, schemas, services

SAMPLE_SUBJECTS = [
    ('Português', 'Língua Portuguesa', [
        ('Gramática', 'Regras gramaticais'),
        ('Interpretação de Texto', 'Compreensão textual'),
    ]),
    ('Matemática', 'Matemática Básica', [
        ('Álgebra', 'Equações e expressões'),
        ('Geometria', 'Formas geométricas'),
    ]),
    ('Direito Constitucional', 'Direito Constitucional', [
        ('Constituição Federal', 'Artigos da CF'),
        ('Princípios Constitucionais', 'Princípios fundamentais'),
    ]),
    ('Direito Administrativo', 'Direito Administrativo', []),
]


def main(email: str, password: str, name: str = 'Demo User'):
    """Create the demo user (if missing) and its sample subjects/topics.

    Running the script twice is harmless: an existing account is left
    untouched.
    """
    create_db_and_tables()
    with Session(engine) as session:
        if repositories.UserRepository(session).get_by_email(email):
            print(f'User {email} already exists; nothing to do')
            return
        user = services.AuthService(session).register(name, email, password)
        subjects = services.SubjectService(session)
        topic_count = 0
        for order, (subject_name, description, topics) in enumerate(SAMPLE_SUBJECTS, start=1):
            subject = subjects.create(
                user.id, schemas.SubjectIn(name=subject_name, description=description, sort_order=order)
            )
            for topic_order, (topic_name, topic_description) in enumerate(topics, start=1):
                subjects.create_topic(
                    subject.id,
                    user.id,
                    schemas.TopicIn(name=topic_name, description=topic_description, sort_order=topic_order),
                )
                topic_count += 1
        print(f'Created {email} with {len(SAMPLE_SUBJECTS)} subjects and {topic_count} topics')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--email', default='usuario@exemplo.com', help='Login of the demo account')
    parser.add_argument('--password', default='123456', help='Password of the demo account')
    args = parser.parse_args()
    main(email=args.email, password=args.password)
