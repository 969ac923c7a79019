from database import SessionLocal, engine
import models
from datetime import timedelta
import auth # Import auth to access hashing function
from plantings import recompute_trees_planted
from store import PlantingStore

# Ensure tables exist
models.Base.metadata.create_all(bind=engine)

IMAGE = "https://images.unsplash.com/photo-1542273917363-3b1817f69a2d?auto=format&fit=crop&q=80&w=1200"


def get_or_create_user(db, name, email, password, role="planter"):
    user = db.query(models.User).filter(models.User.email == email).first()
    if not user:
        user = models.User(
            name=name,
            email=email,
            hashed_password=auth.get_password_hash(password), # Properly hashed
            role=role,
            trees_planted=0,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        print(f"Created {role}: {name}")
    return user


def seed_data():
    db = SessionLocal()

    # Check if we already have plantings
    if db.query(models.Planting).count() > 0:
        print("Database already has data.")
        db.close()
        return

    ada = get_or_create_user(db, "Ada Green", "ada@greenpulse.dev", "Secret123")
    kofi = get_or_create_user(db, "Kofi Mensah", "kofi@greenpulse.dev", "Secret123")
    verifier = get_or_create_user(db, "Vera Verifier", "vera@greenpulse.dev", "Secret123", role="verifier")

    now = models.utcnow()
    rows = [
        # (owner, type, species, address, lat, lng, city, state, country, days ago, verified)
        (ada, "Oak", "Quercus robur", "Hyde Park, London", 51.5073, -0.1657, "London", "England", "United Kingdom", 3, True),
        (ada, "Birch", "Betula pendula", "Regent's Park, London", 51.5313, -0.1570, "London", "England", "United Kingdom", 12, True),
        (ada, "Maple", "Acer campestre", "Richmond Park, London", 51.4425, -0.2760, "London", "England", "United Kingdom", 40, False),
        (kofi, "Mahogany", "Khaya ivorensis", "Achimota Forest, Accra", 5.6200, -0.2300, "Accra", "Greater Accra", "Ghana", 1, True),
        (kofi, "Neem", "Azadirachta indica", "Legon Botanical Garden, Accra", 5.6505, -0.1870, "Accra", "Greater Accra", "Ghana", 20, True),
        (kofi, "Shea", "Vitellaria paradoxa", "Tamale Road, Tamale", 9.4008, -0.8393, "Tamale", "Northern", "Ghana", 75, True),
    ]

    for owner, tree_type, species, address, lat, lng, city, state, country, days_ago, verified in rows:
        planted = now - timedelta(days=days_ago)
        planting = models.Planting(
            tree_type=tree_type,
            species=species,
            address=address,
            latitude=lat,
            longitude=lng,
            city=city,
            state=state,
            country=country,
            planting_date=planted,
            created_at=planted,
            health_status="good",
            planted_by=owner.id,
            is_active=True,
            is_verified=verified,
            verified_by=verifier.id if verified else None,
            verification_date=now if verified else None,
        )
        planting.images.append(models.PlantingImage(url=IMAGE))
        db.add(planting)
        print(f"Added: {tree_type} in {city}")

    db.commit()

    store = PlantingStore(db)
    for owner in (ada, kofi):
        recompute_trees_planted(store, owner.id)

    print("Seeding Complete!")
    db.close()

if __name__ == "__main__":
    seed_data()
