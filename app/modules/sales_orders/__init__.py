"""
Módulo de Pedidos (Sales Orders)

- Conversión de cotizaciones aceptadas en pedidos
- Descuento y reposición de stock con movimientos de inventario
- Registro de pagos (ledger) con saldo derivado
- Estados: en_cours -> en_preparation -> expedie -> livre -> termine (o annule)

Tablas principales:
- sales_orders: Cabecera del pedido y ajustes copiados de la cotización
- sales_order_sections / sales_order_items: Secciones y líneas
- sales_order_payments: Pagos recibidos
"""
