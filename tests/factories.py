from app.core.security import token_manager
from app.services.student_fee_service import StudentRef


def student(student_id="S1", name="Asha Rao", class_name="5", **extra) -> StudentRef:
    extra.setdefault("section", "A")
    extra.setdefault("guardian_email", f"{student_id.lower()}@parents.example.com")
    extra.setdefault("guardian_phone", "+919800000001")
    return StudentRef(student_id=student_id, name=name, class_name=class_name, **extra)


def auth(roles, student_ids=(), user_id="u-1", name="Test User"):
    token = token_manager.create_access_token(
        user_id, name=name, roles=list(roles), student_ids=list(student_ids)
    )
    return {"Authorization": f"Bearer {token}"}
