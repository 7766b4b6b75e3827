#!/usr/bin/env python3
"""
Script to connect a business to the WhatsApp Cloud API
Usage: python -m autoreply.scripts.connect_business <business_id|new:NAME> <phone_number_id> <access_token> [app_secret]
"""
import sys
from sqlalchemy.orm import Session

from autoreply.config.database import SessionLocal, init_db
from autoreply.services.business.business_service import BusinessService


def connect(target: str, phone_number_id: str, access_token: str, app_secret: str = None):
    db: Session = SessionLocal()

    try:
        if target.startswith("new:"):
            business = BusinessService.create_business(db, name=target[len("new:"):])
        else:
            business = BusinessService.get_business(db, int(target))
            if not business:
                print(f"❌ Error: Business with ID {target} not found")
                return None

        business = BusinessService.connect_whatsapp(
            db,
            business,
            phone_number_id=phone_number_id,
            access_token=access_token,
            app_secret=app_secret,
        )

        print(f"✅ Business {business.id} ({business.name or 'unnamed'}) connected")
        print(f"   phone_number_id: {business.phone_number_id}")
        print(f"   webhook verify token: {business.webhook_verify_token}")
        return business

    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print(__doc__)
        sys.exit(1)

    init_db()
    result = connect(*sys.argv[1:5])
    sys.exit(0 if result else 1)
