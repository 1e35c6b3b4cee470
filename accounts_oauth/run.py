import uvicorn
from accounts_oauth.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "accounts_oauth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
