"""
Módulo de Facturación

- Facturas de venta por sede con numeración mensual por empresa
- Ítems con snapshot del producto (nombre, SKU, descripción)
- Flujo de estados: draft -> pending -> paid / overdue / cancelled
- Emitir una factura descuenta stock vía el ledger de inventario; anularla lo devuelve
"""
