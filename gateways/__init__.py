from .base import GatewayOrder, GatewayResult, GatewayRefund, PaymentGateway, build_gateways, get_gateway
