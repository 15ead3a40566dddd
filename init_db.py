import argparse

from app import create_app
from models import db, Owner
from services.audit_service import AuditService
from services.template_loader import TemplateLoader
from services.validation import ConfigurationError
from utils import normalize_email


def create_owner(email, password, business_name=None):
    """Create an owner account unless one already exists for the email."""
    email = normalize_email(email)
    owner = Owner.query.filter_by(email=email).first()
    if owner:
        print(f"Owner {email} already exists (id {owner.id})")
        return owner

    owner = Owner(email=email, business_name=business_name)
    owner.set_password(password)
    db.session.add(owner)
    try:
        db.session.commit()
        print(f"Created owner {email} (id {owner.id})")
    except Exception as e:
        db.session.rollback()
        print(f"Error creating owner: {str(e)}")
        raise
    return owner


def init_db(owner_email=None, owner_password=None, business_name=None):
    app = create_app()
    with app.app_context():
        # Create all tables
        db.create_all()

        try:
            TemplateLoader.load_all()
        except ConfigurationError as e:
            print(str(e))
            raise SystemExit(1)

        counts = TemplateLoader.sync_to_database(db.session, AuditService(db.session))
        print(
            f"Templates synced: {counts['created']} created, "
            f"{counts['updated']} updated, {counts['unchanged']} unchanged"
        )

        if owner_email:
            if not owner_password:
                print("--owner-password is required with --owner-email")
                raise SystemExit(1)
            create_owner(owner_email, owner_password, business_name)

        print("\nActive templates:")
        for definition in TemplateLoader.all():
            print(f"  {definition.slug}: {definition.name}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Create tables, sync form templates, and optionally add an owner.')
    parser.add_argument('--owner-email')
    parser.add_argument('--owner-password')
    parser.add_argument('--business-name')
    args = parser.parse_args()
    init_db(args.owner_email, args.owner_password, args.business_name)
