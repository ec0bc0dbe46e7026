from homelab import create_app


app = create_app()
