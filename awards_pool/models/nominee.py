from awards_pool import db


class Nominee(db.Model):
    __tablename__ = "nominees"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    film = db.Column(db.String(200))
    song = db.Column(db.String(200))
    description = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("category_id", "name", "film", name="unique_category_nominee"),
        db.Index("idx_nominee_category", "category_id"),
    )

    def __repr__(self):
        return f"<Nominee {self.name}>"

    def to_dict(self):
        """Convert nominee to dictionary for API responses"""
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "film": self.film,
            "song": self.song,
            "description": self.description,
        }
