import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exiftagger.config import Settings
from exiftagger.routers.metadata import get_settings, router as metadata_router


def create_app(settings: Optional[Settings] = None) -> FastAPI:
	settings = settings or Settings.from_env()
	logging.basicConfig(
		level=getattr(logging, settings.log_level, logging.INFO),
		format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
	)

	app = FastAPI(title="ExifTagger - Inspection Metadata API", version="0.1.0")

	# CORS (adjust origins in production)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=False,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	# Routers
	app.include_router(metadata_router)
	app.dependency_overrides[get_settings] = lambda: settings

	return app


app = create_app()


if __name__ == "__main__":
	# Local dev server: uvicorn exiftagger.main:app --reload
	import uvicorn

	uvicorn.run("exiftagger.main:app", host="0.0.0.0", port=8000, reload=True)
