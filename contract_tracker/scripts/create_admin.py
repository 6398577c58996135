import argparse
import asyncio
from contract_tracker.database import SessionLocal, init_db
from contract_tracker import repository
from contract_tracker.auth import generate_temporary_password, hash_password


async def create_admin(email: str, password: str = None, display_name: str = None) -> None:
	"""Provision an admin account, or promote the existing user with this email"""
	init_db()
	db = SessionLocal()
	try:
		user = await repository.get_user_by_email(db, email)
		if user:
			await repository.update_user(db, user.id, {"role": "admin"})
			print(f"Promoted {user.email} to admin.")
			return
		temporary = password is None
		password = password or generate_temporary_password()
		pwd_hash, salt = hash_password(password)
		user = await repository.create_user(
			db,
			email,
			pwd_hash,
			salt,
			display_name=display_name,
			role="admin",
			needs_password_reset=temporary,
		)
		print(f"Created admin {user.email} ({user.id}).")
		if temporary:
			print(f"Temporary password: {password}")
	finally:
		db.close()


def main() -> None:
	parser = argparse.ArgumentParser(description="Create or promote a Contract Tracker admin user")
	parser.add_argument("email")
	parser.add_argument("--password", help="initial password; a temporary one is generated when omitted")
	parser.add_argument("--name", dest="display_name")
	args = parser.parse_args()
	asyncio.run(create_admin(args.email, args.password, args.display_name))


if __name__ == "__main__":
	main()
