# Point d'entree de l'application Flask
import os
from dotenv import load_dotenv

# On charge les variables d'environnement avant de lire la configuration
load_dotenv()

from signflow import create_app  # noqa: E402

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port)
