import os

from awards_pool import create_app, db
from awards_pool.models import (
    ActualWinner,
    Category,
    Nominee,
    OddsSnapshot,
    Pool,
    Prediction,
    User,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Pool": Pool,
        "Category": Category,
        "Nominee": Nominee,
        "Prediction": Prediction,
        "OddsSnapshot": OddsSnapshot,
        "ActualWinner": ActualWinner,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=app.debug)
