import os
from bamx import create_app
from waitress import serve

app = create_app()

if __name__ == "__main__":
    # Puerto de la plataforma de despliegue o 5000 por defecto
    port = int(os.environ.get("PORT", 5000))
    serve(app, host="0.0.0.0", port=port)
