"""初期管理者アカウント作成スクリプト

認証情報は認証サービス側で管理するため、ここでは購読操作用の users 行のみ作る。
"""
import sys

from realty_billing.core.database import SessionLocal
from realty_billing.models.user import User

ADMIN_NAME = "Администратор"


def main(name: str = ADMIN_NAME):
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.name == name, User.role == "admin").first()
        if existing:
            print(f"既に存在します: id={existing.id}, name={name}")
            return

        user = User(name=name, role="admin", is_active=True, is_trial_used=True)
        db.add(user)
        db.commit()
        print(f"管理者作成完了: id={user.id}, name={name}")
    finally:
        db.close()


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else ADMIN_NAME)
