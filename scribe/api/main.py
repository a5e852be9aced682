from fastapi import FastAPI

from scribe.api.routes.transcripts import router as transcripts_router

app = FastAPI(
    title="Scribe API",
    description="Read access to saved diarized transcripts",
    version="0.1.0",
)

app.include_router(transcripts_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
