import logging
from arithduel import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

app = create_app("development")

if __name__ == "__main__":
    # threaded: each room serializes on its own lock
    app.run(host="0.0.0.0", port=5000, debug=True, threaded=True)
