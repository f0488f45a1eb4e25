from carwash.routes.auth import auth_bp
from carwash.api.booking.bookings import bookings_bp
from carwash.api.subscriptions.requests import subscriptions_bp
from carwash.api.admin.settings import admin_settings_bp
from carwash.api.admin_dashboard.stats import dashboard_bp
from carwash.api.communication.notifications import notifications_bp
from carwash.api.inventory.items import inventory_bp
from carwash.api.pos.pos import pos_bp
from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv
from flasgger import Swagger
from swagger__config import SWAGGER_CONFIG, SWAGGER_TEMPLATE
import os

load_dotenv()
from carwash.config import Config  # noqa: E402
from carwash.extensions import db  # noqa: E402
from carwash.scheduler import init_scheduler  # noqa: E402


def create_app():
    print("Starting create_app()")
    app = Flask(__name__)
    print(f"Flask app created: {app}")
    try:
        print("Loading config...")
        app.config.from_object(Config)
        print("Config loaded successfully")
        print(f"Config items: {len(app.config)} items loaded")

        print("Initializing CORS...")
        CORS(app)
        print("CORS initialized")

        print("Initializing database...")
        db.init_app(app)
        print("Database initialized")
        print("Initializing Swagger/OpenAPI documentation...")
        # Determine host based on environment
        host = os.environ.get("API_HOST", "127.0.0.1:5000")
        swagger_template = SWAGGER_TEMPLATE.copy()
        swagger_template["host"] = host

        Swagger(app, config=SWAGGER_CONFIG, template=swagger_template)
        print("Swagger initialized - Access at /api/docs")
        print("Registering blueprints...")

        blueprints = [
            auth_bp,
            bookings_bp,
            subscriptions_bp,
            admin_settings_bp,
            dashboard_bp,
            notifications_bp,
            inventory_bp,
            pos_bp,
        ]

        for bp in blueprints:
            app.register_blueprint(bp)
            print(f"  ✓ {bp.name} registered")

        print("All blueprints registered successfully")

        if app.config.get("SCHEDULER_ENABLED"):
            print("Starting background scheduler...")
            init_scheduler(app)
        else:
            print("Background scheduler disabled")

        print("Adding root route...")

        @app.route("/")
        def home():
            """
            Root endpoint - API status
            ---
            tags:
              - Utility
            responses:
              200:
                description: API is running
                schema:
                  type: object
                  properties:
                    status:
                      type: string
                    message:
                      type: string
            """
            return {"status": "ok", "message": "Car wash backend is running!"}, 200

        print("Root route added")

        print("Checking registered routes:")
        route_count = 0
        for rule in app.url_map.iter_rules():
            route_count += 1
            print(
                f"   Route {route_count}: {rule.endpoint} -> {rule.rule} [{list(rule.methods)}]"
            )  # noqa: E501
        print(f"Total routes registered: {route_count}")

    except Exception as e:
        print(f"Error during app creation: {e}")
        print(f"Error type: {type(e)}")
        import traceback

        print(f"Full traceback: {traceback.format_exc()}")
        raise

    print("create_app() completed successfully")
    return app


print("About to call create_app()")
app = create_app()
print(f"App created: {app}")
print(f"App debug: {app.debug}")

# Port diagnostics
expected_port = os.environ.get("PORT", "NOT SET")
print(f"PORT environment variable: {expected_port}")
print(f"Gunicorn should be listening on: {expected_port}")


if __name__ == "__main__":
    # Create a .env containing:
    #       DATABASE_URL=postgresql://<USER>:<PASSWORD>@<HOST>:<PORT>/carwash
    #       SECRET_KEY=<random string>
    #       RESEND_API_KEY=<optional, e-mails are skipped without it>

    port = int(os.environ.get("PORT", 5000))
    app.run(
        host="0.0.0.0", port=port, debug=os.environ.get("FLASK_ENV") != "production"
    )
