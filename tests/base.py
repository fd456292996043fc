import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vtc_backend.admissions_module.models import Trainee, TraineeStatus
from vtc_backend.app import create_app
from vtc_backend.assessment_module.models import (
    DurationUnit,
    Qualification,
    QualificationApprovalStatus,
    QualificationType,
)
from vtc_backend.database import get_db_session, init_db
from vtc_backend.finance_module.models import FeeType
from vtc_backend.rbac_module.models import AppRole, Organization, User
from vtc_backend.security import create_access_token, hash_password


PASSWORD = "Password@123"


class ApiTestCase(unittest.TestCase):
    """Fresh in-memory database per test, shared by the client and ``self.db``."""

    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_db(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)
        self.db = self.Session()

        def override_session():
            session = self.Session()
            try:
                yield session
            finally:
                session.close()

        app = create_app(init_on_startup=False)
        app.dependency_overrides[get_db_session] = override_session
        self.client = TestClient(app)

        self.org = self.make_organization("VTC1", "vtc1.ac.test", "V")
        self.admin = self.make_user(AppRole.ORGANIZATION_ADMIN)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    # --- seeding ---

    def make_organization(self, code, email_domain, prefix):
        organization = Organization(
            name=f"{code} Training Centre",
            code=code,
            email_domain=email_domain,
            trainee_id_prefix=prefix,
        )
        self.db.add(organization)
        self.db.commit()
        return organization

    def make_user(self, role, organization=None, email=None):
        role_value = role.value if isinstance(role, AppRole) else role
        organization = organization or self.org
        org_id = None if role_value == AppRole.SUPER_ADMIN.value else organization.id
        user = User(
            email=email or f"{role_value}.{organization.code.lower()}@example.com",
            password_hash=hash_password(PASSWORD),
            firstname=role_value.replace("_", " ").title(),
            surname="Tester",
            role=role_value,
            organization_id=org_id,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def make_fee_type(self, category, amount, organization=None):
        fee_type = FeeType(
            organization_id=(organization or self.org).id,
            name=f"{category.value.title()} fee",
            category=category,
            amount=amount,
        )
        self.db.add(fee_type)
        self.db.commit()
        return fee_type

    def make_qualification(self, code="NVC-ELEC", status=QualificationApprovalStatus.APPROVED, organization=None):
        qualification = Qualification(
            organization_id=(organization or self.org).id,
            qualification_title="Electrical Installation",
            qualification_code=code,
            qualification_type=QualificationType.NVC,
            nqf_level=4,
            duration_value=12,
            duration_unit=DurationUnit.MONTHS,
            status=status,
        )
        self.db.add(qualification)
        self.db.commit()
        return qualification

    def make_trainee(self, qualification=None, gender="male", number="V20250001", organization=None, user=None):
        trainee = Trainee(
            organization_id=(organization or self.org).id,
            trainee_number=number,
            first_name="Thabo",
            last_name="Nkosi",
            gender=gender,
            qualification_id=qualification.id if qualification else None,
            academic_year="2025",
            status=TraineeStatus.ACTIVE,
            user_id=user.id if user else None,
        )
        self.db.add(trainee)
        self.db.commit()
        return trainee

    # --- requests ---

    def auth(self, user):
        token = create_access_token(user.email, user.role, user.organization_id)
        return {"Authorization": f"Bearer {token}"}

    def reload(self, model, record_id):
        self.db.expire_all()
        return self.db.get(model, record_id)

    def assertError(self, response, status_code, message=None):
        self.assertEqual(response.status_code, status_code, response.text)
        body = response.json()
        self.assertFalse(body["success"])
        if message is not None:
            self.assertIn(message, body["error"])
