"""Demo data for local environments (``flask seed-demo``).

Idempotent: users are matched by email and programs by name, so running the
command twice does not duplicate anything.
"""
import logging
from datetime import date, datetime

from ceti.models import db, utcnow
from ceti.models.program import Program, ProgramMember
from ceti.models.task import Task, TaskAssignee
from ceti.models.user import ROLE_ADMIN, ROLE_COLLABORATOR, User
from ceti.utils.crypto import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("Administrador CETI", "admin@ceti.mx", ROLE_ADMIN),
    ("María López", "maria.lopez@ceti.mx", ROLE_COLLABORATOR),
    ("Carlos Rodríguez", "carlos.rodriguez@ceti.mx", ROLE_COLLABORATOR),
    ("Ana Martínez", "ana.martinez@ceti.mx", ROLE_COLLABORATOR),
]

# name, objective, description, start, end, member emails
DEMO_PROGRAMS = [
    (
        "Modernización de Laboratorios",
        "Mejorar la infraestructura tecnológica para el aprendizaje práctico",
        "Actualización de equipos y software en laboratorios de ingeniería",
        date(2025, 1, 1), date(2025, 6, 30),
        ["maria.lopez@ceti.mx", "carlos.rodriguez@ceti.mx"],
    ),
    (
        "Certificación ISO 9001",
        "Obtener la certificación ISO 9001 para garantizar calidad educativa",
        "Proceso de certificación de calidad para todos los programas académicos",
        date(2025, 2, 1), date(2025, 12, 31),
        ["carlos.rodriguez@ceti.mx", "ana.martinez@ceti.mx"],
    ),
    (
        "Vinculación con la Industria",
        "Fortalecer la relación academia-industria",
        "Establecer convenios con empresas locales para prácticas profesionales",
        date(2025, 1, 15), date(2025, 11, 15),
        ["ana.martinez@ceti.mx"],
    ),
]

# program index, name, due date, status, progress, deliverables, assignee emails
DEMO_TASKS = [
    (0, "Inventario de Equipos Actuales", datetime(2025, 2, 15), "DONE", 100,
     "Documento Excel con inventario completo", ["maria.lopez@ceti.mx"]),
    (0, "Cotización de Nuevo Equipamiento", datetime(2025, 3, 1), "IN_PROGRESS", 60,
     "Cotizaciones de al menos 3 proveedores", ["maria.lopez@ceti.mx", "carlos.rodriguez@ceti.mx"]),
    (0, "Plan de Instalación", datetime(2025, 3, 15), "TODO", 0,
     "Cronograma detallado, plan de contingencias", ["maria.lopez@ceti.mx"]),
    (1, "Análisis de Procesos Actuales", datetime(2025, 3, 30), "IN_PROGRESS", 40,
     "Mapa de procesos, diagramas de flujo", ["carlos.rodriguez@ceti.mx"]),
    (1, "Capacitación en ISO 9001", datetime(2025, 4, 15), "TODO", 0,
     "Material de capacitación, registro de asistencia", ["carlos.rodriguez@ceti.mx", "ana.martinez@ceti.mx"]),
    (2, "Identificación de Empresas Objetivo", datetime(2025, 2, 28), "DONE", 100,
     "Base de datos con contactos", ["ana.martinez@ceti.mx"]),
    (2, "Presentación Institucional", datetime(2025, 3, 10), "IN_PROGRESS", 75,
     "Presentación y folletos informativos", ["ana.martinez@ceti.mx"]),
]


def _get_or_create_user(name, email, role, password_hash) -> tuple[User, bool]:
    user = User.query.filter_by(email=email).first()
    if user:
        return user, False
    user = User(name=name, email=email, role=role, password_hash=password_hash, is_active=True)
    db.session.add(user)
    db.session.flush()
    return user, True


def seed_demo(password: str = "ceti1234") -> dict:
    """Insert the demo dataset and return how many rows of each kind were created."""
    created = {"users": 0, "programs": 0, "members": 0, "tasks": 0}
    password_hash = hash_password(password)

    users = {}
    for name, email, role in DEMO_USERS:
        users[email], is_new = _get_or_create_user(name, email, role, password_hash)
        created["users"] += int(is_new)
    admin = users["admin@ceti.mx"]

    programs = []
    new_programs = set()
    for name, objective, description, start, end, members in DEMO_PROGRAMS:
        program = Program.query.filter_by(name=name).first()
        if program is None:
            program = Program(name=name, general_objective=objective, description=description,
                              start_date=start, end_date=end, status="ACTIVE")
            db.session.add(program)
            db.session.flush()
            new_programs.add(program.id)
            created["programs"] += 1
            for email in members:
                db.session.add(ProgramMember(program_id=program.id, user_id=users[email].id))
                created["members"] += 1
        programs.append(program)

    # Tasks only for programs created in this run
    for index, name, due, status, progress, deliverables, assignees in DEMO_TASKS:
        program = programs[index]
        if program.id not in new_programs:
            continue
        task = Task(
            name=name,
            program_id=program.id,
            creator_id=admin.id,
            due_date=due,
            status=status,
            progress=progress,
            expected_deliverables=deliverables,
            reference_links=[],
            completed_at=utcnow() if status == "DONE" else None,
        )
        db.session.add(task)
        db.session.flush()
        for email in assignees:
            db.session.add(TaskAssignee(task_id=task.id, user_id=users[email].id))
        created["tasks"] += 1

    db.session.commit()
    logger.info("Demo data seeded: %s", created)
    return created
