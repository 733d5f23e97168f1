import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "quizcraft.main:app",
        host="0.0.0.0",
        port=8002,
        reload=True,
        workers=1,
    )
