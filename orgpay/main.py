from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from orgpay.routers import orders, subscriptions, plans, webhooks, history, accounts
from orgpay.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

app = FastAPI(
    title="OrgPay API",
    description="Multi-tenant PayPal payments ledger: orders, subscriptions, webhooks and history",
    version="1.0.0",
    redirect_slashes=False
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "OrgPay API",
        "version": "1.0.0"
    })

# Include routers
app.include_router(orders.router, prefix="/api/paypal", tags=["Orders"])
app.include_router(subscriptions.router, prefix="/api/paypal", tags=["Subscriptions"])
app.include_router(plans.router, prefix="/api/paypal", tags=["Plans"])
app.include_router(webhooks.router, prefix="/api/paypal", tags=["Webhooks"])
app.include_router(history.router, prefix="/api/paypal", tags=["History"])
app.include_router(accounts.router, prefix="/api/paypal", tags=["Accounts"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
