"""Initialize database with sample data."""
import sys
from sqlalchemy.orm import Session
from flaglab.database import SessionLocal, engine, Base
from flaglab.enums import ExperimentStatus, SegmentType
from flaglab.models import FeatureFlag
from flaglab.schemas.admin import ExperimentCreate, FeatureFlagCreate, SegmentCreate, VariantCreate
from flaglab.services.admin import FlagAdminService
from flaglab.services.errors import FeatureFlagError


def init_database():
    """Initialize database with a sample flag, segment and running experiment."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()

    try:
        # Check if a flag already exists
        existing_flag = db.query(FeatureFlag).first()
        if existing_flag:
            print("✓ Database already initialized")
            return

        admin = FlagAdminService(db)

        print("\nCreating sample feature flag...")
        flag = admin.create_feature_flag(FeatureFlagCreate(
            name="New dashboard",
            key="new-dashboard",
            description="Redesigned dashboard behind a staged rollout",
            value=True,
            default_value=False,
            rollout_percentage=10,
            segments=[
                SegmentCreate(
                    name="beta-testers",
                    type=SegmentType.ATTRIBUTE_BASED,
                    conditions={"rule": "attribute_in", "attribute": "cohort", "values": ["beta"]},
                    priority=10
                )
            ]
        ))
        print(f"✓ Created flag: {flag.key}")

        print("\nCreating sample experiment...")
        experiment = admin.create_experiment(ExperimentCreate(
            name="dashboard-layout",
            description="List vs grid layout",
            feature_flag_id=flag.id,
            variants=[
                VariantCreate(name="list", value={"layout": "list"}, percentage=50),
                VariantCreate(name="grid", value={"layout": "grid"}, percentage=50)
            ]
        ))
        admin.update_experiment_status(experiment.id, ExperimentStatus.RUNNING)
        print(f"✓ Created experiment: {experiment.name} (RUNNING)")

        print("\n" + "="*50)
        print("✓ Database initialized successfully!")
        print("="*50)
        print("Try it with curl:")
        print('  curl "http://localhost:8000/flags/new-dashboard/evaluate?user_id=user-42"')
        print("\n" + "="*50)

    except FeatureFlagError as e:
        print(f"✗ Error initializing database: {e}")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    init_database()
